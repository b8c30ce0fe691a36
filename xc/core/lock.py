"""
Optional password lock on budget configuration.

The lock protects ``budget set`` and ``budget reset``; reading the budget
never requires the password.
"""

import dataclasses
import hashlib
import hmac
import logging
import secrets
from typing import Optional

from xc.config.loader import ConfigContext
from .errors import IncorrectPassword, PasswordRequired
from .guardrails import load_budget, save_budget

logger = logging.getLogger(__name__)

# scrypt cost parameters (N=2**14, r=8, p=1), 64-byte derived key
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64
SALT_BYTES = 32
_SCRYPT_MAXMEM = 64 * 1024 * 1024


def hash_password(password: str, salt: str) -> str:
    """Derive a scrypt hash of ``password`` as 128 lowercase hex characters."""
    key = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=_SCRYPT_MAXMEM,
        dklen=KEY_LENGTH,
    )
    return key.hex()


def is_locked(ctx: ConfigContext) -> bool:
    return load_budget(ctx).locked


def verify_password(ctx: ConfigContext, password: str) -> bool:
    """Check ``password`` against the stored hash.

    Returns True when no lock is configured: an unlocked budget may be
    changed by anyone.
    """
    budget = load_budget(ctx)
    if not budget.locked:
        return True
    candidate = hash_password(password, budget.password_salt)
    return hmac.compare_digest(candidate, budget.password_hash)


def lock_budget(ctx: ConfigContext, password: str) -> None:
    """Lock the budget with a fresh random salt, keeping daily/action."""
    budget = load_budget(ctx)
    salt = secrets.token_hex(SALT_BYTES)
    save_budget(ctx, dataclasses.replace(
        budget,
        password_hash=hash_password(password, salt),
        password_salt=salt,
    ))
    logger.info("Budget locked")


def unlock_budget(ctx: ConfigContext) -> None:
    """Remove the password lock, keeping daily/action."""
    budget = load_budget(ctx)
    save_budget(ctx, dataclasses.replace(budget, password_hash=None, password_salt=None))
    logger.info("Budget unlocked")


def require_password_if_locked(ctx: ConfigContext, password: Optional[str]) -> None:
    """Gate for budget-mutating commands.

    Raises:
        PasswordRequired: Budget is locked and no password was supplied
        IncorrectPassword: Budget is locked and the password does not match
    """
    if not is_locked(ctx):
        return
    if not password:
        raise PasswordRequired()
    if not verify_password(ctx, password):
        raise IncorrectPassword()
