"""Per-request view of who is signed in and which company they work in.

`SessionContext` is created from a mutable mapping (``request.session`` in
views, a plain dict in scripts and tests). It is hydrated from that mapping,
updated on login and company switch, and torn down on logout.
"""

from __future__ import annotations

import logging
from typing import List, MutableMapping, Optional

logger = logging.getLogger(__name__)

SESSION_KEY = "ledger_desk_auth"


class SessionContext:
    def __init__(self, store: Optional[MutableMapping] = None):
        self.store = store if store is not None else {}
        self._reset()

    def _reset(self):
        self.user: Optional[dict] = None
        self.memberships: List[dict] = []
        self.selected_company: Optional[dict] = None
        self.role: Optional[str] = None
        self.token: Optional[str] = None
        self.cookies: dict = {}

    # ---------- lifecycle ----------
    @classmethod
    def hydrate(cls, store: MutableMapping) -> "SessionContext":
        ctx = cls(store)
        raw = store.get(SESSION_KEY)
        if not raw:
            return ctx
        try:
            user = raw["user"]
            if not user or not user.get("_id"):
                raise ValueError("stored user has no id")
            ctx.user = user
            ctx.memberships = list(raw.get("memberships") or [])
            ctx.selected_company = raw.get("selected_company")
            ctx.role = raw.get("role")
            ctx.token = raw.get("token")
            ctx.cookies = dict(raw.get("cookies") or {})
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning("Discarding invalid stored session", extra={"error": str(e)})
            ctx.teardown()
        return ctx

    def login(self, user: dict, memberships: List[dict], token: Optional[str] = None, cookies: Optional[dict] = None):
        self._reset()
        self.user = user
        self.memberships = list(memberships or [])
        self.token = token
        self.cookies = dict(cookies or {})
        self._persist()

    def select_company(self, membership: dict):
        self.selected_company = membership["company"]
        self.role = membership.get("role")
        self._persist()

    def add_membership(self, company: dict, membership: dict, *, select: bool = True):
        entry = {
            "_id": membership.get("_id"),
            "companyId": company.get("_id"),
            "role": membership.get("role"),
            "status": membership.get("status"),
            "joinedAt": membership.get("joinedAt"),
            "company": company,
        }
        self.memberships.append(entry)
        if select:
            self.select_company(entry)
        else:
            self._persist()
        return entry

    def teardown(self):
        self._reset()
        self.store.pop(SESSION_KEY, None)

    def _persist(self):
        self.store[SESSION_KEY] = self.to_dict()

    # ---------- queries ----------
    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def has_company(self) -> bool:
        return self.selected_company is not None

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("_id") if self.user else None

    @property
    def company_id(self) -> Optional[str]:
        return self.selected_company.get("_id") if self.selected_company else None

    def find_membership(self, membership_id: str) -> Optional[dict]:
        for m in self.memberships:
            if m.get("_id") == membership_id or m.get("companyId") == membership_id:
                return m
        return None

    def to_dict(self) -> dict:
        return {
            "user": self.user,
            "memberships": self.memberships,
            "selected_company": self.selected_company,
            "role": self.role,
            "token": self.token,
            "cookies": self.cookies,
        }

    def snapshot(self) -> dict:
        """Public view without credentials."""
        return {
            "isAuthenticated": self.is_authenticated,
            "user": self.user,
            "memberships": self.memberships,
            "selectedCompany": self.selected_company,
            "role": self.role,
        }


def sign_in(client, ctx: SessionContext, account: str, password: str) -> SessionContext:
    """Log in against the backend and load the user's memberships.

    On any failure the context is torn down and the error propagates.
    """
    try:
        user, token = client.login(account, password)
        memberships = client.get_user_memberships(user["_id"])
    except Exception:
        ctx.teardown()
        raise
    ctx.login(user, memberships, token=token, cookies=client.cookies)
    logger.info("Signed in", extra={"user_id": ctx.user_id, "memberships": len(ctx.memberships)})
    return ctx
