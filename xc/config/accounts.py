"""
Account store backed by config.json.

Holds one credential per named account plus the default account name.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .loader import ConfigContext, read_json, write_json_atomic
from xc.core.errors import ConfigError

logger = logging.getLogger(__name__)

AUTH_OAUTH2 = "oauth2"
AUTH_BEARER = "bearer"

DEFAULT_ACCOUNT_NAME = "default"

# (attribute, JSON key) for every optional credential field
_CREDENTIAL_FIELDS = (
    ("access_token", "accessToken"),
    ("refresh_token", "refreshToken"),
    ("expires_at", "expiresAt"),
    ("bearer_token", "bearerToken"),
    ("client_id", "clientId"),
)


@dataclass(frozen=True)
class AuthCredential:
    """Credential for one account.

    ``type`` is kept as the raw string from disk so an unrecognised value
    survives a load/save cycle and is rejected only when resolved.
    """
    type: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch milliseconds
    bearer_token: Optional[str] = None
    client_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthCredential":
        if not isinstance(data, dict) or "type" not in data:
            raise ConfigError("Account auth must be an object with a 'type'")
        values = {attr: data.get(key) for attr, key in _CREDENTIAL_FIELDS}
        return cls(type=data["type"], **values)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for attr, key in _CREDENTIAL_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class AccountConfig:
    """A named API identity and its cached user lookup."""
    name: str
    auth: AuthCredential
    user_id: Optional[str] = None
    username: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountConfig":
        if not isinstance(data, dict):
            raise ConfigError("Account entry must be an object")
        return cls(
            name=data.get("name", ""),
            auth=AuthCredential.from_dict(data.get("auth")),
            user_id=data.get("userId"),
            username=data.get("username"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "auth": self.auth.to_dict()}
        if self.user_id is not None:
            data["userId"] = self.user_id
        if self.username is not None:
            data["username"] = self.username
        return data


@dataclass
class XcConfig:
    """Contents of config.json."""
    default_account: str = DEFAULT_ACCOUNT_NAME
    accounts: Dict[str, AccountConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "XcConfig":
        if not isinstance(data, dict):
            raise ConfigError("config.json must contain an object")
        accounts = data.get("accounts") or {}
        if not isinstance(accounts, dict):
            raise ConfigError("'accounts' must be an object")
        return cls(
            default_account=data.get("defaultAccount", DEFAULT_ACCOUNT_NAME),
            accounts={name: AccountConfig.from_dict(a) for name, a in accounts.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "defaultAccount": self.default_account,
            "accounts": {name: a.to_dict() for name, a in self.accounts.items()},
        }


def load_config(ctx: ConfigContext) -> XcConfig:
    """Load config.json, returning an empty config when none exists."""
    if not ctx.config_path.exists():
        return XcConfig()
    return XcConfig.from_dict(read_json(ctx.config_path))


def save_config(ctx: ConfigContext, config: XcConfig) -> None:
    write_json_atomic(ctx.config_path, config.to_dict())


def resolve_account_name(ctx: ConfigContext, name: Optional[str] = None) -> str:
    """Name that ``name`` refers to, falling back to the default account."""
    if name:
        return name
    return load_config(ctx).default_account


def get_account(ctx: ConfigContext, name: Optional[str] = None) -> Optional[AccountConfig]:
    config = load_config(ctx)
    return config.accounts.get(name or config.default_account)


def set_account(ctx: ConfigContext, name: str, account: AccountConfig) -> None:
    """Insert or replace an account, leaving all others untouched."""
    config = load_config(ctx)
    config.accounts[name] = account
    save_config(ctx, config)
    logger.debug("Saved account %s", name)


def set_default_account(ctx: ConfigContext, name: str) -> None:
    config = load_config(ctx)
    config.default_account = name
    save_config(ctx, config)


def remove_account(ctx: ConfigContext, name: str) -> bool:
    """Delete an account. Returns False if it did not exist."""
    config = load_config(ctx)
    if name not in config.accounts:
        return False
    del config.accounts[name]
    save_config(ctx, config)
    return True
