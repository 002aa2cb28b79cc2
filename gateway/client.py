"""HTTP client for the external accounting backend.

The backend answers with one of two envelopes, ``{"isOk": bool, "data": ...}``
or ``{"success": bool, "data": ..., "error": {...}}``; `AccountingClient.request`
normalises both to the second form. Every public method returns the
envelope's ``data`` or raises `ApiError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import requests
from django.conf import settings

from .exceptions import ApiError

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PATCH", "PUT", "DELETE"}


def _clean_params(filters: Optional[dict]) -> dict:
    return {k: v for k, v in (filters or {}).items() if v not in (None, "")}


class AccountingClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        cookies: Optional[dict] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        if cookies:
            self.session.cookies.update(cookies)

    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self.session.cookies.items())

    def _headers(self, method: str) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        csrf = self.session.cookies.get("csrfToken")
        if csrf and method in MUTATING_METHODS:
            headers["x-csrf-token"] = csrf
        return headers

    def request(self, method: str, endpoint: str, *, json: Any = None, params: Optional[dict] = None) -> dict:
        method = method.upper()
        url = f"{self.base_url}{endpoint}"
        try:
            r = self.session.request(
                method, url, json=json, params=params, headers=self._headers(method), timeout=self.timeout
            )
        except requests.Timeout:
            logger.warning("Accounting API timeout", extra={"url": url, "method": method})
            raise ApiError("Request timeout") from None
        except requests.RequestException as e:
            logger.error("Accounting API unreachable", extra={"url": url, "method": method, "error": str(e)})
            raise ApiError(f"Request failed: {e}") from e

        if not r.ok:
            try:
                error_data = r.json()
            except ValueError:
                error_data = {}
            logger.error(
                "Accounting API request failed",
                extra={"url": url, "method": method, "status": r.status_code, "error_data": error_data},
            )
            message = None
            if isinstance(error_data, dict) and isinstance(error_data.get("error"), dict):
                message = error_data["error"].get("message")
            raise ApiError(message or f"HTTP {r.status_code}: {r.reason}", status=r.status_code, payload=error_data)

        try:
            data = r.json()
        except ValueError:
            raise ApiError("Backend did not return valid JSON", status=r.status_code) from None

        if isinstance(data, dict) and "isOk" in data:
            return {
                "success": bool(data["isOk"]),
                "data": data.get("data"),
                "error": None if data["isOk"] else {"code": "API_ERROR", "message": "Request failed"},
            }
        return data

    def _data(self, method: str, endpoint: str, failure: str, **kwargs):
        """Unwrap ``data`` from a successful envelope; `failure` is the
        fallback message when the backend gives none."""
        response = self.request(method, endpoint, **kwargs)
        if not response.get("success") or response.get("data") is None:
            error = response.get("error") or {}
            raise ApiError(error.get("message") or failure, payload=response)
        return response["data"]

    # ---------- auth ----------
    def login(self, account: str, password: str) -> Tuple[dict, str]:
        """Return ``(user, token)``; the token is the ``accessToken`` cookie
        when the backend sets one, otherwise the user id."""
        user = self._data("POST", "/auth/login", "Login failed", json={"account": account, "password": password})
        token = self.session.cookies.get("accessToken") or user.get("_id")
        self.token = token
        return user, token

    def logout(self) -> None:
        self.request("POST", "/auth/logout")

    def request_password_reset(self, email: str) -> None:
        self.request("POST", "/auth/request-new-password", json={"email": email})

    def reset_password(self, token: str, password: str) -> None:
        self.request("POST", f"/auth/reset-password/{token}", json={"password": password})

    # ---------- companies & memberships ----------
    def get_user_memberships(self, user_id: str) -> list:
        return self._data("GET", f"/memberships/get/user/{user_id}", "Failed to fetch user memberships")

    def create_company(self, company: dict) -> dict:
        """Returns ``{"company": ..., "membership": ...}``."""
        return self._data("POST", "/company/post", "Failed to create company", json=company)

    def get_companies(self, page: int = 1, limit: int = 20) -> dict:
        return self._data(
            "GET", "/company/get", "Failed to fetch companies", params={"page": page, "limit": limit}
        )

    def get_company(self, company_id: str) -> dict:
        return self._data("GET", f"/company/get/{company_id}", "Failed to fetch company")

    # ---------- accounts ----------
    def get_accounts(self, company_id: str) -> list:
        return self._data("GET", "/accounts/get", "Failed to fetch accounts", params={"companyId": company_id})

    def get_account(self, account_id: str) -> dict:
        return self._data("GET", f"/accounts/get/{account_id}", "Failed to fetch account")

    def create_account(self, account: dict) -> dict:
        return self._data("POST", "/accounts/post/create", "Failed to create account", json=account)

    def update_account(self, account_id: str, account: dict) -> dict:
        return self._data("PATCH", f"/accounts/patch/{account_id}", "Failed to update account", json=account)

    def delete_account(self, account_id: str, *, company_id: str, force: bool = False) -> dict:
        return self._data(
            "DELETE",
            f"/accounts/delete/{account_id}",
            "Failed to delete account",
            json={"companyId": company_id, "force": force},
        )

    def seed_chart_of_accounts(self, company_id: str) -> list:
        return self._data(
            "POST", "/accounts/post/seed-chart", "Failed to seed chart of accounts", json={"companyId": company_id}
        )

    # ---------- transactions ----------
    def get_transactions(self, filters: Optional[dict] = None) -> dict:
        return self._data("GET", "/transactions/get", "Failed to fetch transactions", params=_clean_params(filters))

    def get_transaction(self, transaction_id: str) -> dict:
        return self._data("GET", f"/transactions/get/{transaction_id}", "Failed to fetch transaction")

    def create_transaction(self, transaction: dict) -> dict:
        return self._data("POST", "/transactions/post/create", "Failed to create transaction", json=transaction)

    def update_transaction(self, transaction_id: str, transaction: dict, company_id: Optional[str] = None) -> dict:
        return self._data(
            "PATCH",
            f"/transactions/patch/{transaction_id}",
            "Failed to update transaction",
            json=transaction,
            params=_clean_params({"companyId": company_id}),
        )

    def delete_transaction(self, transaction_id: str, company_id: Optional[str] = None) -> dict:
        return self._data(
            "DELETE",
            f"/transactions/delete/{transaction_id}",
            "Failed to delete transaction",
            params=_clean_params({"companyId": company_id}),
        )

    # ---------- reports ----------
    def get_report(self, report: str, filters: Optional[dict] = None) -> dict:
        return self._data(
            "GET",
            f"/reporting/get/{report}",
            f"Failed to fetch {report.replace('-', ' ')}",
            params=_clean_params(filters),
        )

    def get_trial_balance(self, filters: Optional[dict] = None) -> dict:
        return self.get_report("trial-balance", filters)

    def get_income_statement(self, filters: Optional[dict] = None) -> dict:
        return self.get_report("income-statement", filters)

    def get_balance_sheet(self, filters: Optional[dict] = None) -> dict:
        return self.get_report("balance-sheet", filters)

    def get_general_ledger(self, filters: Optional[dict] = None) -> dict:
        return self.get_report("general-ledger", filters)


def client_for(ctx=None, **kwargs) -> AccountingClient:
    """Build a client from settings, carrying the caller's backend credentials."""
    if ctx is not None:
        kwargs.setdefault("token", ctx.token)
        kwargs.setdefault("cookies", ctx.cookies)
    return AccountingClient(
        settings.ACCOUNTING_API_URL,
        timeout=settings.ACCOUNTING_API_TIMEOUT,
        **kwargs,
    )
