"""
Error taxonomy for the credential and cost-governance layer.

Every error raised deliberately by xc derives from ``XcError`` so the CLI
can report it once and exit 1.
"""

import json
from typing import Any, Optional


class XcError(Exception):
    """Base class for all errors reported to the user."""


class ConfigError(XcError):
    """Invalid or unreadable configuration."""


class NoAccountConfigured(XcError):
    """No account exists under the requested (or default) name."""

    def __init__(self, account_name: Optional[str] = None):
        suffix = f" ({account_name})" if account_name else ""
        super().__init__(f"No account configured{suffix}. Run: xc auth login")
        self.account_name = account_name


class UnknownAuthType(XcError):
    """Stored credential has a type the resolver does not understand."""

    def __init__(self, auth_type: Any):
        super().__init__(f"Unknown auth type: {auth_type}")
        self.auth_type = auth_type


class CredentialError(XcError):
    """Stored credential cannot produce a usable token."""


class EmptyBearerToken(CredentialError):
    def __init__(self):
        super().__init__("Bearer token is empty. Run: xc auth token <TOKEN>")


class MissingAccessToken(CredentialError):
    def __init__(self):
        super().__init__("No access token. Run: xc auth login")


class NoRefreshPath(CredentialError):
    def __init__(self):
        super().__init__(
            "Token expired and no refresh token available. Run: xc auth login"
        )


class TokenRefreshError(XcError):
    """Token endpoint answered a refresh request with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Token refresh failed ({status}): {body}")
        self.status = status
        self.body = body


class OAuthError(XcError):
    """Interactive authorization flow failed."""


class BudgetError(XcError):
    """Base class for budget enforcement failures."""


class BudgetExceeded(BudgetError):
    """Raised under the ``block`` policy when a call would exceed the daily limit."""

    def __init__(self, message: str, daily: float, today_spend: float, call_cost: float):
        super().__init__(message)
        self.daily = daily
        self.today_spend = today_spend
        self.call_cost = call_cost


class CancelledByUser(BudgetError):
    """User declined the over-budget confirmation prompt."""

    def __init__(self):
        super().__init__("Cancelled by user.")


class LockError(XcError):
    """Base class for password lock failures."""


class PasswordRequired(LockError):
    def __init__(self):
        super().__init__("budget is locked. Provide --password to continue.")


class IncorrectPassword(LockError):
    def __init__(self):
        super().__init__("incorrect password.")


class XApiError(XcError):
    """Non-2xx response from the X API."""

    def __init__(self, status: int, body: Any):
        super().__init__(f"X API error ({status}): {json.dumps(body)}")
        self.status = status
        self.body = body
