"""
Unit tests for budget configuration and enforcement.

Tests the budget store and every policy of the budget gate.
"""

import json
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from xc.config.loader import ConfigContext
from xc.core import guardrails
from xc.core.errors import BudgetExceeded, CancelledByUser, ConfigError
from xc.core.guardrails import (
    BudgetAction,
    BudgetConfig,
    check_budget,
    load_budget,
    reset_budget,
    save_budget,
)
from xc.storage.ledger import load_entries, log_call


class TestBudgetStore:
    """Test budget.json persistence."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.ctx = ConfigContext(Path(self.temp_dir))

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_file_defaults_to_warn(self):
        """No budget.json means no limit and the warn action."""
        budget = load_budget(self.ctx)
        assert budget.daily is None
        assert budget.action == BudgetAction.WARN
        assert not budget.locked

    def test_save_and_load(self):
        """Saved budgets load back unchanged."""
        budget = BudgetConfig(daily=2.5, action=BudgetAction.BLOCK)
        save_budget(self.ctx, budget)
        assert load_budget(self.ctx) == budget

    def test_on_disk_format(self):
        """budget.json uses camelCase and omits unset fields."""
        save_budget(self.ctx, BudgetConfig(daily=1.0, action=BudgetAction.CONFIRM))
        assert json.loads(self.ctx.budget_path.read_text()) == {"daily": 1.0, "action": "confirm"}

        save_budget(self.ctx, BudgetConfig(
            daily=1.0, password_hash="ab" * 64, password_salt="cd" * 32
        ))
        raw = json.loads(self.ctx.budget_path.read_text())
        assert raw["passwordHash"] == "ab" * 64
        assert raw["passwordSalt"] == "cd" * 32

    def test_invalid_action_raises_error(self):
        """Unknown actions are rejected."""
        self.ctx.budget_path.write_text('{"daily": 1, "action": "explode"}')
        with pytest.raises(ConfigError, match="'action' must be one of"):
            load_budget(self.ctx)

    def test_non_numeric_daily_raises_error(self):
        """daily must be a number."""
        self.ctx.budget_path.write_text('{"daily": "lots"}')
        with pytest.raises(ConfigError, match="'daily' must be a number"):
            load_budget(self.ctx)

    def test_lock_fields_must_be_paired(self):
        """A hash without a salt (or vice versa) is invalid."""
        with pytest.raises(ConfigError, match="set together"):
            BudgetConfig(daily=1.0, password_hash="abc")
        with pytest.raises(ConfigError, match="set together"):
            BudgetConfig(daily=1.0, password_salt="abc")

    def test_reset_removes_file(self):
        """Reset deletes budget.json; resetting twice is harmless."""
        save_budget(self.ctx, BudgetConfig(daily=1.0))
        reset_budget(self.ctx)
        assert not self.ctx.budget_path.exists()
        reset_budget(self.ctx)
        assert load_budget(self.ctx) == BudgetConfig()

    def test_reset_keeps_usage_history(self):
        """Reset never touches the ledger."""
        log_call(self.ctx, "posts.create")
        save_budget(self.ctx, BudgetConfig(daily=1.0))
        reset_budget(self.ctx)
        assert len(load_entries(self.ctx)) == 1


class TestBudgetGate:
    """Test check_budget under each policy."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.ctx = ConfigContext(Path(self.temp_dir))
        self.now = datetime.now().astimezone().replace(hour=12, minute=0, second=0, microsecond=0)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _spend(self, *endpoints, when=None):
        for endpoint in endpoints:
            log_call(self.ctx, endpoint, now=when or self.now - timedelta(minutes=5))

    def test_no_daily_limit_always_passes(self):
        """Without a daily limit the gate never fires."""
        self._spend(*["posts.searchAll"] * 100)
        check_budget(self.ctx, "posts.searchAll", now=self.now)

    def test_zero_daily_limit_is_unlimited(self):
        """daily == 0 behaves like no limit."""
        save_budget(self.ctx, BudgetConfig(daily=0.0, action=BudgetAction.BLOCK))
        self._spend("posts.create")
        check_budget(self.ctx, "posts.create", now=self.now)

    def test_spending_exactly_up_to_limit_is_allowed(self):
        """0.01 spent + 0.005 call == 0.015 limit passes."""
        save_budget(self.ctx, BudgetConfig(daily=0.015, action=BudgetAction.BLOCK))
        self._spend("posts.create")
        check_budget(self.ctx, "users.getMe", now=self.now)

    def test_block_raises_when_over(self):
        """Block refuses the call with a descriptive message."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.BLOCK))
        self._spend("posts.create")

        with pytest.raises(BudgetExceeded, match=r"(?i)budget.*exceeded") as exc_info:
            check_budget(self.ctx, "posts.create", now=self.now)

        message = str(exc_info.value)
        assert "$0.01" in message
        assert "xc budget reset" in message
        assert exc_info.value.daily == 0.01
        assert exc_info.value.today_spend == 0.01
        assert exc_info.value.call_cost == 0.01

    def test_block_message_format(self):
        """Message lists limit, today's spend and the call cost."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.BLOCK))
        self._spend("posts.create")

        with pytest.raises(BudgetExceeded) as exc_info:
            check_budget(self.ctx, "posts.searchAll", now=self.now)
        assert str(exc_info.value) == (
            "Daily budget $0.01 exceeded (today: $0.01 + $0.02). "
            "Use 'xc budget reset' or increase your budget."
        )

    def test_yesterday_spend_does_not_count(self):
        """The day starts at local midnight."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.BLOCK))
        midnight = self.now.replace(hour=0)
        self._spend(*["posts.create"] * 5, when=midnight - timedelta(minutes=1))
        check_budget(self.ctx, "posts.create", now=self.now)

    def test_warn_calls_sink_and_proceeds(self):
        """Warn reports once and does not raise."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.WARN))
        self._spend("posts.create")
        warn = Mock()

        check_budget(self.ctx, "posts.create", warn=warn, now=self.now)

        warn.assert_called_once()
        assert warn.call_args[0][0].startswith("Warning: Daily budget $0.01 exceeded")

    def test_warn_silent_under_limit(self):
        """Warn sink is not called when the call fits."""
        save_budget(self.ctx, BudgetConfig(daily=1.0, action=BudgetAction.WARN))
        warn = Mock()
        check_budget(self.ctx, "posts.create", warn=warn, now=self.now)
        warn.assert_not_called()

    def test_confirm_accepted_proceeds(self):
        """Confirm proceeds when the user agrees."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.CONFIRM))
        self._spend("posts.create")
        confirm = Mock(return_value=True)

        check_budget(self.ctx, "posts.create", confirm=confirm, now=self.now)

        confirm.assert_called_once()
        assert confirm.call_args[0][0].endswith("Continue?")

    def test_confirm_declined_cancels(self):
        """Confirm raises CancelledByUser when the user declines."""
        save_budget(self.ctx, BudgetConfig(daily=0.01, action=BudgetAction.CONFIRM))
        self._spend("posts.create")

        with pytest.raises(CancelledByUser, match="Cancelled by user."):
            check_budget(self.ctx, "posts.create", confirm=Mock(return_value=False), now=self.now)

    def test_non_finite_ledger_cost_is_ignored(self):
        """A NaN cost line in the ledger does not break the gate."""
        save_budget(self.ctx, BudgetConfig(daily=1.0, action=BudgetAction.BLOCK))
        self._spend("posts.create")
        with open(self.ctx.usage_path, "a", encoding="utf-8") as f:
            f.write(json.dumps({
                "timestamp": (self.now - timedelta(minutes=1)).isoformat(),
                "endpoint": "users.getMe",
                "method": "GET",
                "estimatedCost": float("nan"),
            }) + "\n")

        check_budget(self.ctx, "users.getMe", now=self.now)

    def test_gate_never_writes_ledger(self):
        """Checking the budget records nothing."""
        save_budget(self.ctx, BudgetConfig(daily=1.0, action=BudgetAction.BLOCK))
        check_budget(self.ctx, "posts.create", now=self.now)
        assert load_entries(self.ctx) == []


class TestConfirmPrompt:
    """Test the interactive y/N prompt."""

    @pytest.mark.parametrize("reply,expected", [
        ("y", True),
        ("Y", True),
        (" y ", True),
        ("n", False),
        ("", False),
        ("yes", False),
    ])
    def test_only_y_accepts(self, reply, expected):
        """Only a single y (any case) counts as yes."""
        with patch.object(guardrails._stderr, "input", return_value=reply):
            assert guardrails.prompt_confirm("Continue?") is expected

    def test_eof_counts_as_no(self):
        """Closed stdin declines."""
        with patch.object(guardrails._stderr, "input", side_effect=EOFError):
            assert guardrails.prompt_confirm("Continue?") is False
