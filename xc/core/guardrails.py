"""
Daily budget configuration and enforcement.

Every cost-governed API call passes through ``check_budget`` before it is
sent. When today's spend plus the call's estimated cost would exceed the
configured daily limit, the configured action decides what happens:

    block   - raise BudgetExceeded, refusing the call
    warn    - write a warning to stderr and let the call proceed
    confirm - ask on stderr/stdin, raise CancelledByUser unless answered "y"
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

from rich.console import Console

from xc.config.loader import ConfigContext, read_json, write_json_atomic
from xc.storage.ledger import load_entries
from .errors import BudgetExceeded, CancelledByUser, ConfigError
from .pricing import estimate_cost, format_currency
from .spend import compute_today_spend

logger = logging.getLogger(__name__)

# Prompts and warnings go to stderr so piped stdout stays parseable
_stderr = Console(stderr=True, soft_wrap=True, highlight=False)


class BudgetAction(Enum):
    """Policy applied when a call would exceed the daily budget."""
    BLOCK = "block"
    WARN = "warn"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class BudgetConfig:
    """Contents of budget.json.

    ``password_hash`` and ``password_salt`` are set together or not at all;
    both present means the budget is locked.
    """
    daily: Optional[float] = None
    action: BudgetAction = BudgetAction.WARN
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None

    def __post_init__(self):
        """Validate the lock fields are paired."""
        if (self.password_hash is None) != (self.password_salt is None):
            raise ConfigError("passwordHash and passwordSalt must be set together")

    @property
    def locked(self) -> bool:
        return bool(self.password_hash and self.password_salt)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BudgetConfig":
        if not isinstance(data, dict):
            raise ConfigError("budget.json must contain an object")

        daily = data.get("daily")
        if daily is not None:
            if isinstance(daily, bool) or not isinstance(daily, (int, float)):
                raise ConfigError("'daily' must be a number")
            daily = float(daily)

        action_str = data.get("action", BudgetAction.WARN.value)
        try:
            action = BudgetAction(str(action_str).lower())
        except ValueError:
            valid_actions = [a.value for a in BudgetAction]
            raise ConfigError(f"'action' must be one of: {valid_actions}")

        return cls(
            daily=daily,
            action=action,
            password_hash=data.get("passwordHash"),
            password_salt=data.get("passwordSalt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.daily is not None:
            data["daily"] = self.daily
        data["action"] = self.action.value
        if self.password_hash is not None:
            data["passwordHash"] = self.password_hash
            data["passwordSalt"] = self.password_salt
        return data


def load_budget(ctx: ConfigContext) -> BudgetConfig:
    """Load budget config, returning ``{action: warn}`` if none exists."""
    if not ctx.budget_path.exists():
        return BudgetConfig()
    return BudgetConfig.from_dict(read_json(ctx.budget_path))


def save_budget(ctx: ConfigContext, config: BudgetConfig) -> None:
    write_json_atomic(ctx.budget_path, config.to_dict())


def reset_budget(ctx: ConfigContext) -> None:
    """Remove budget configuration entirely. Usage history is kept."""
    if ctx.budget_path.exists():
        ctx.budget_path.unlink()


def prompt_confirm(message: str) -> bool:
    """Ask for y/N on stderr, reading the answer from stdin."""
    try:
        answer = _stderr.input(f"{message} [y/N] ", markup=False)
    except EOFError:
        # closed stdin counts as "no"
        return False
    return answer.strip().lower() == "y"


def print_warning(message: str) -> None:
    _stderr.print(message, markup=False)


def check_budget(
    ctx: ConfigContext,
    endpoint: str,
    confirm: Optional[Callable[[str], bool]] = None,
    warn: Optional[Callable[[str], None]] = None,
    now: Optional[datetime] = None
) -> None:
    """Check whether a call to ``endpoint`` fits within today's budget.

    Spending exactly up to the limit is allowed. The day starts at local
    midnight, not a rolling 24 hours.

    Args:
        ctx: Config context locating budget.json and usage.jsonl
        endpoint: Endpoint identifier used for the cost lookup
        confirm: Prompt used by the ``confirm`` action (defaults to stderr/stdin)
        warn: Sink used by the ``warn`` action (defaults to stderr)
        now: Clock override

    Raises:
        BudgetExceeded: Over budget under the ``block`` action
        CancelledByUser: Over budget under ``confirm`` and the user declined
    """
    budget = load_budget(ctx)
    if not budget.daily:
        return

    today_spend = compute_today_spend(load_entries(ctx), now)
    call_cost = estimate_cost(endpoint)

    projected = Decimal(str(today_spend)) + Decimal(str(call_cost))
    if projected <= Decimal(str(budget.daily)):
        return

    msg = (
        f"Daily budget {format_currency(budget.daily)} exceeded "
        f"(today: {format_currency(today_spend)} + {format_currency(call_cost)})"
    )
    logger.debug("Budget check failed for %s under action %s", endpoint, budget.action.value)

    if budget.action == BudgetAction.BLOCK:
        raise BudgetExceeded(
            f"{msg}. Use 'xc budget reset' or increase your budget.",
            daily=budget.daily,
            today_spend=today_spend,
            call_cost=call_cost,
        )

    if budget.action == BudgetAction.WARN:
        (warn or print_warning)(f"Warning: {msg}")
        return

    if not (confirm or prompt_confirm)(f"{msg}. Continue?"):
        raise CancelledByUser()
