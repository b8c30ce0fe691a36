"""
Credential resolution for API calls.

Turns a stored account into a usable bearer token. OAuth 2.0 tokens that are
expired, or will expire within the safety margin, are refreshed and the new
token set is written back to config.json before it is returned.
"""

import dataclasses
import logging
import time
from typing import Callable, Optional

from xc.config.accounts import AUTH_BEARER, AUTH_OAUTH2, get_account, resolve_account_name, set_account
from xc.config.loader import ConfigContext
from .errors import (
    EmptyBearerToken,
    MissingAccessToken,
    NoAccountConfigured,
    NoRefreshPath,
    UnknownAuthType,
)

logger = logging.getLogger(__name__)

# Refresh this long before the provider's expiry
REFRESH_MARGIN_MS = 60_000

# Called as refresher(client_id=..., refresh_token=...); returns an object
# with access_token, refresh_token (may be None) and expires_at (epoch ms).
Refresher = Callable[..., object]


def needs_refresh(expires_at: Optional[int], now_ms: int) -> bool:
    """True once ``now_ms`` is within the margin of expiry. Unset expiry counts as expired."""
    return now_ms >= (expires_at or 0) - REFRESH_MARGIN_MS


def resolve_token(
    ctx: ConfigContext,
    account_name: Optional[str] = None,
    *,
    refresher: Refresher,
    now: Optional[float] = None
) -> str:
    """Get a valid access token for the account, refreshing if needed.

    Args:
        ctx: Config context locating config.json
        account_name: Account to use (defaults to the configured default)
        refresher: Token refresh service
        now: Clock override in epoch seconds

    Returns:
        Bearer token string

    Raises:
        NoAccountConfigured: No such account
        EmptyBearerToken: Bearer credential with a blank token
        MissingAccessToken: OAuth 2.0 credential without an access token
        NoRefreshPath: Token expiring with no refresh token or client ID
        UnknownAuthType: Unrecognised credential type
        Exception: Whatever ``refresher`` raises, unchanged
    """
    name = resolve_account_name(ctx, account_name)
    account = get_account(ctx, name)
    if account is None:
        raise NoAccountConfigured(account_name)

    auth = account.auth

    if auth.type == AUTH_BEARER:
        if not auth.bearer_token:
            raise EmptyBearerToken()
        return auth.bearer_token

    if auth.type == AUTH_OAUTH2:
        if not auth.access_token:
            raise MissingAccessToken()

        now_ms = int((time.time() if now is None else now) * 1000)
        if not needs_refresh(auth.expires_at, now_ms):
            return auth.access_token

        if not auth.refresh_token or not auth.client_id:
            raise NoRefreshPath()

        logger.info("Refreshing access token for account %s", name)
        result = refresher(client_id=auth.client_id, refresh_token=auth.refresh_token)

        updated = dataclasses.replace(
            auth,
            access_token=result.access_token,
            refresh_token=result.refresh_token or auth.refresh_token,
            expires_at=result.expires_at,
        )
        set_account(ctx, name, dataclasses.replace(account, auth=updated))
        return result.access_token

    raise UnknownAuthType(auth.type)
