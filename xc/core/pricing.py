"""
Per-endpoint cost and HTTP method tables.

Endpoint identifiers are namespaced ``resource.action`` strings shared by
both tables. Costs are rough estimates in dollars based on X API pricing
tiers; methods are descriptive only and never sent on the wire.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict


@dataclass(frozen=True)
class CostTable:
    """Fixed cost table with a default for unmapped endpoints."""
    prices: Dict[str, Decimal]
    default: Decimal

    def get_cost(self, endpoint: str) -> Decimal:
        return self.prices.get(endpoint, self.default)


DEFAULT_COST = Decimal("0.005")

_READ = Decimal("0.005")
_WRITE = Decimal("0.01")
_FREE = Decimal("0")

COST_TABLE = CostTable(
    prices={
        "posts.searchRecent": _WRITE,
        "posts.searchAll": Decimal("0.02"),
        "posts.create": _WRITE,
        "posts.delete": _READ,
        "posts.getQuoteTweets": _READ,
        "posts.getLikingUsers": _READ,
        "posts.getRetweetedBy": _READ,
        "posts.hideReply": _READ,
        "posts.unhideReply": _READ,
        "users.getMe": _READ,
        "users.getByUsername": _READ,
        "users.getPosts": _READ,
        "users.getTimeline": _READ,
        "users.getMentions": _READ,
        "users.likePost": _READ,
        "users.unlikePost": _READ,
        "users.getLikedPosts": _READ,
        "users.repostPost": _READ,
        "users.unrepostPost": _READ,
        "users.getBookmarks": _READ,
        "users.createBookmark": _READ,
        "users.deleteBookmark": _READ,
        "users.getFollowers": _READ,
        "users.getFollowing": _READ,
        "users.followUser": _READ,
        "users.unfollowUser": _READ,
        "users.muteUser": _READ,
        "users.unmuteUser": _READ,
        "users.getMuting": _READ,
        "users.blockUser": _READ,
        "users.unblockUser": _READ,
        "users.getBlocking": _READ,
        "users.search": _WRITE,
        "users.getOwnedLists": _READ,
        "users.followList": _READ,
        "users.unfollowList": _READ,
        "users.pinList": _READ,
        "users.unpinList": _READ,
        "lists.getPosts": _READ,
        "lists.create": _READ,
        "lists.update": _READ,
        "lists.delete": _READ,
        "lists.getMembers": _READ,
        "lists.addMember": _READ,
        "lists.removeMember": _READ,
        "directMessages.createByParticipantId": _WRITE,
        "directMessages.getEvents": _READ,
        "directMessages.getEventsByParticipantId": _READ,
        "media.upload": _WRITE,
        "media.initializeUpload": _READ,
        "media.appendUpload": _FREE,
        "media.finalizeUpload": _READ,
        "media.getUploadStatus": _FREE,
        "usage.get": _FREE,
        "stream.getRules": _FREE,
        "stream.updateRules": _READ,
        "stream.posts": _FREE,
        "trends.getPersonalized": _READ,
        "trends.getByWoeid": _READ,
    },
    default=DEFAULT_COST,
)

DEFAULT_METHOD = "GET"

METHOD_TABLE: Dict[str, str] = {
    "posts.create": "POST",
    "posts.delete": "DELETE",
    "posts.hideReply": "PUT",
    "posts.unhideReply": "PUT",
    "users.likePost": "POST",
    "users.unlikePost": "DELETE",
    "users.repostPost": "POST",
    "users.unrepostPost": "DELETE",
    "users.createBookmark": "POST",
    "users.deleteBookmark": "DELETE",
    "users.followUser": "POST",
    "users.unfollowUser": "DELETE",
    "users.muteUser": "POST",
    "users.unmuteUser": "DELETE",
    "users.blockUser": "POST",
    "users.unblockUser": "DELETE",
    "users.followList": "POST",
    "users.unfollowList": "DELETE",
    "users.pinList": "POST",
    "users.unpinList": "DELETE",
    "lists.create": "POST",
    "lists.update": "PUT",
    "lists.delete": "DELETE",
    "lists.addMember": "POST",
    "lists.removeMember": "DELETE",
    "directMessages.createByParticipantId": "POST",
    "media.upload": "POST",
    "media.initializeUpload": "POST",
    "media.appendUpload": "POST",
    "media.finalizeUpload": "POST",
    "stream.updateRules": "POST",
}


def estimate_cost(endpoint: str) -> float:
    """Estimated dollar cost of one call to ``endpoint``."""
    return float(COST_TABLE.get_cost(endpoint))


def infer_method(endpoint: str) -> str:
    """HTTP method an endpoint uses, for display and logging."""
    return METHOD_TABLE.get(endpoint, DEFAULT_METHOD)


def format_currency(amount: float) -> str:
    """Format a dollar amount as $X.XX."""
    return f"${amount:.2f}"
