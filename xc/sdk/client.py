"""
Guarded X API client.

Every request is budget-checked, authenticated with a resolved (possibly
refreshed) token, and recorded in the usage ledger once it succeeds.
"""

import dataclasses
import functools
import json as jsonlib
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import httpx

from xc.config.accounts import get_account, resolve_account_name, set_account
from xc.config.loader import ConfigContext, Settings, load_settings
from xc.core.credentials import Refresher, resolve_token
from xc.core.errors import XApiError
from xc.core.guardrails import check_budget
from xc.core.pricing import infer_method
from xc.storage.ledger import log_call
from .oauth import refresh_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCost:
    """Calls made by this process and their summed estimated cost."""
    endpoints: List[str]
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return {"endpoints": list(self.endpoints), "total": self.total}


class XClient:
    """X API v2 client that enforces the budget and records usage.

    All failures are loud: budget, credential and HTTP errors propagate to
    the caller and nothing is logged for a call that did not succeed.
    """

    def __init__(
        self,
        ctx: ConfigContext,
        account: Optional[str] = None,
        settings: Optional[Settings] = None,
        http: Optional[httpx.Client] = None,
        refresher: Optional[Refresher] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        warn: Optional[Callable[[str], None]] = None
    ):
        """Initialize the client.

        Args:
            ctx: Config context for credentials, budget and ledger files
            account: Account name (defaults to the configured default)
            settings: Endpoint settings (defaults to settings.yaml)
            http: httpx client to send requests with
            refresher: Token refresh service (defaults to the token endpoint)
            confirm: Prompt for the ``confirm`` budget action
            warn: Sink for the ``warn`` budget action
        """
        self.ctx = ctx
        self.account = account
        self.settings = settings or load_settings(ctx)
        self.http = http or httpx.Client(timeout=self.settings.timeout_seconds)
        self.refresher = refresher or functools.partial(
            refresh_access_token, settings=self.settings, http=self.http
        )
        self.confirm = confirm
        self.warn = warn
        self._session: List[tuple] = []

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "XClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def request(
        self,
        endpoint_id: str,
        path: str,
        method: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        json: Any = None
    ) -> Any:
        """Make an authenticated, budget-checked request.

        Args:
            endpoint_id: Endpoint identifier for cost lookup, e.g. ``posts.create``
            path: API path below the base URL, e.g. ``/tweets``
            method: HTTP method (inferred from ``endpoint_id`` when omitted)
            params: Query parameters
            json: JSON request body

        Returns:
            Decoded JSON response

        Raises:
            BudgetExceeded, CancelledByUser: From the budget gate
            CredentialError, NoAccountConfigured, UnknownAuthType: From token resolution
            TokenRefreshError: From a failed refresh
            XApiError: On a non-2xx response
        """
        check_budget(self.ctx, endpoint_id, confirm=self.confirm, warn=self.warn)
        token = resolve_token(self.ctx, self.account, refresher=self.refresher)

        method = method or infer_method(endpoint_id)
        headers = {"Authorization": f"Bearer {token}"}
        logger.debug("%s %s (%s)", method, path, endpoint_id)
        response = self.http.request(
            method,
            f"{self.settings.api_base}{path}",
            params=params,
            json=json,
            headers=headers,
        )

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise XApiError(response.status_code, body)

        # the call went through, so it is recorded even if the body is unusable
        entry = log_call(self.ctx, endpoint_id)
        self._session.append((endpoint_id, entry.estimated_cost))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise XApiError(response.status_code, response.text)

    def session_cost(self) -> SessionCost:
        total = sum((Decimal(str(cost)) for _, cost in self._session), Decimal("0"))
        return SessionCost(endpoints=[e for e, _ in self._session], total=float(total))

    def output_json(self, data: Any) -> str:
        """Render ``data`` as JSON with this session's cost attached under ``_cost``."""
        cost = self.session_cost().to_dict()
        if isinstance(data, dict):
            wrapped = {**data, "_cost": cost}
        else:
            wrapped = {"data": data, "_cost": cost}
        return jsonlib.dumps(wrapped, indent=2)

    def resolve_authenticated_user_id(self) -> str:
        """ID of the authenticated user, cached in the account record."""
        name = resolve_account_name(self.ctx, self.account)
        account = get_account(self.ctx, name)
        if account is not None and account.user_id:
            return account.user_id

        result = self.request("users.getMe", "/users/me", params={"user.fields": "id"})
        data = result["data"]

        # re-read: the request may have refreshed and persisted the token
        account = get_account(self.ctx, name)
        if account is not None:
            set_account(self.ctx, name, dataclasses.replace(
                account, user_id=data["id"], username=data.get("username")
            ))
        return data["id"]
