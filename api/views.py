# api/views.py
import logging
from dataclasses import asdict

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from gateway import permissions
from gateway.client import client_for
from gateway.exceptions import ApiError
from gateway.session import SessionContext, sign_in
from journal import drafts, services
from journal.assembler import build_create_request
from journal.kinds import EXPENSE, REVENUE, get_kind
from journal.lines import LineSet, TransactionHeader
from journal.validation import calculate_balance, validate

from .authz import expires_in, require, resolve_session
from .serializers import (
    AccountFilterIn,
    AccountIn,
    CompanyIn,
    DraftIn,
    ErrorOut,
    JournalEntryIn,
    KindIn,
    LineEditIn,
    LoginIn,
    PasswordResetConfirmIn,
    PasswordResetIn,
    PreviewOut,
    SelectCompanyIn,
    ShortcutIn,
    TransactionFilterIn,
)

# --- drf-spectacular imports ---
from drf_spectacular.utils import (
    extend_schema, extend_schema_view,
    OpenApiExample, OpenApiParameter, OpenApiTypes,
)

logger = logging.getLogger(__name__)

BALANCED_ENTRY = {
    "date": "2025-08-23",
    "description": "Cash sale",
    "reference": "INV-001",
    "lines": [
        {"account_id": "acc_cash", "debit_amount": "25.00", "credit_amount": ""},
        {"account_id": "acc_sales", "debit_amount": "", "credit_amount": "25.00"},
    ],
}


def session_payload(ctx: SessionContext) -> dict:
    data = ctx.snapshot()
    data["permissions"] = permissions.available_actions(ctx.role)
    data["roleDescription"] = permissions.describe_role(ctx.role)
    data["expiresIn"] = expires_in(ctx)
    return data


# ======================
# Session
# ======================
class AuthView(viewsets.ViewSet):
    """
    POST /api/auth/login/            -> sign in against the backend
    POST /api/auth/logout/           -> sign out and clear the session
    GET  /api/auth/session/          -> who is signed in, which company, what they may do
    POST /api/auth/password-reset/   -> ask the backend to send a reset email
    """

    @extend_schema(
        summary="Sign in",
        request=LoginIn,
        responses={200: OpenApiTypes.OBJECT, 401: ErrorOut},
        tags=["Session"],
        examples=[OpenApiExample("Login", request_only=True, value={"account": "jane", "password": "secret123"})],
    )
    @action(detail=False, methods=["post"])
    def login(self, request):
        s = LoginIn(data=request.data)
        s.is_valid(raise_exception=True)
        ctx = SessionContext(request.session)
        try:
            sign_in(client_for(), ctx, **s.validated_data)
        except ApiError as e:
            logger.info("Sign in refused", extra={"account": s.validated_data["account"], "error": e.message})
            return Response({"detail": e.message, "code": "LOGIN_FAILED"}, status=status.HTTP_401_UNAUTHORIZED)
        data = session_payload(ctx)
        data["needsCompanySelection"] = len(ctx.memberships) > 0
        return Response(data)

    @extend_schema(summary="Sign out", request=None, responses={204: None}, tags=["Session"])
    @action(detail=False, methods=["post"])
    def logout(self, request):
        ctx = SessionContext.hydrate(request.session)
        if ctx.is_authenticated:
            try:
                client_for(ctx).logout()
            except ApiError as e:
                logger.warning("Backend logout failed", extra={"user_id": ctx.user_id, "error": e.message})
        ctx.teardown()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(summary="Current session", responses={200: OpenApiTypes.OBJECT}, tags=["Session"])
    @action(detail=False, methods=["get"])
    def session(self, request):
        ctx = resolve_session(request, company=False)
        return Response(session_payload(ctx))

    @extend_schema(summary="Request a password reset", request=PasswordResetIn, responses={204: None}, tags=["Session"])
    @action(detail=False, methods=["post"], url_path="password-reset")
    def password_reset(self, request):
        s = PasswordResetIn(data=request.data)
        s.is_valid(raise_exception=True)
        client_for().request_password_reset(s.validated_data["email"])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Set a new password", request=PasswordResetConfirmIn, responses={204: None}, tags=["Session"]
    )
    @action(detail=False, methods=["post"], url_path="password-reset/confirm")
    def password_reset_confirm(self, request):
        s = PasswordResetConfirmIn(data=request.data)
        s.is_valid(raise_exception=True)
        client_for().reset_password(s.validated_data["token"], s.validated_data["password"])
        return Response(status=status.HTTP_204_NO_CONTENT)


# ======================
# Companies
# ======================
class CompanyView(viewsets.ViewSet):
    """
    GET  /api/companies/         -> the signed-in user's memberships
    POST /api/companies/         -> create a company and switch to it
    POST /api/companies/select/  -> switch the working company
    """

    @extend_schema(summary="List my companies", tags=["Companies"])
    def list(self, request):
        ctx = resolve_session(request, company=False)
        return Response(ctx.memberships)

    @extend_schema(summary="Create company", request=CompanyIn, tags=["Companies"])
    def create(self, request):
        ctx = resolve_session(request, company=False)
        s = CompanyIn(data=request.data)
        s.is_valid(raise_exception=True)
        payload = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in s.validated_data.items()}
        result = client_for(ctx).create_company(payload)
        entry = ctx.add_membership(result["company"], result["membership"])
        logger.info("Company created", extra={"user_id": ctx.user_id, "company_id": ctx.company_id})
        return Response({"membership": entry, "session": session_payload(ctx)}, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Select company", request=SelectCompanyIn, tags=["Companies"])
    @action(detail=False, methods=["post"])
    def select(self, request):
        ctx = resolve_session(request, company=False)
        s = SelectCompanyIn(data=request.data)
        s.is_valid(raise_exception=True)
        membership = ctx.find_membership(s.validated_data["membership_id"])
        if membership is None:
            return Response(
                {"detail": "You are not a member of that company.", "code": "UNKNOWN_MEMBERSHIP"},
                status=status.HTTP_404_NOT_FOUND,
            )
        ctx.select_company(membership)
        return Response(session_payload(ctx))


# ======================
# Accounts
# ======================
@extend_schema_view(
    list=extend_schema(
        summary="List accounts",
        description="Chart of accounts for the selected company, optionally narrowed to the accounts "
        "a transaction kind allows on one side.",
        parameters=[
            OpenApiParameter("kind", OpenApiTypes.STR, OpenApiParameter.QUERY, enum=["manual", "expense", "revenue"]),
            OpenApiParameter("side", OpenApiTypes.STR, OpenApiParameter.QUERY, enum=["debit", "credit"]),
        ],
        tags=["Accounts"],
        examples=[
            OpenApiExample(
                "Sample response",
                response_only=True,
                value=[{"_id": "acc_cash", "code": "1000", "name": "Cash", "accountType": "ASSET"}],
            )
        ],
    ),
    create=extend_schema(summary="Create account", request=AccountIn, tags=["Accounts"]),
    partial_update=extend_schema(summary="Update account", request=AccountIn, tags=["Accounts"]),
    destroy=extend_schema(
        summary="Delete account",
        parameters=[OpenApiParameter("force", OpenApiTypes.BOOL, OpenApiParameter.QUERY)],
        tags=["Accounts"],
    ),
)
class AccountViewSet(viewsets.ViewSet):
    lookup_value_regex = "[^/]+"

    def list(self, request):
        ctx = resolve_session(request)
        require(ctx, permissions.can_view_accounts)
        f = AccountFilterIn(data=request.query_params)
        f.is_valid(raise_exception=True)
        accounts = client_for(ctx).get_accounts(ctx.company_id)
        side = f.validated_data.get("side")
        if side:
            accounts = get_kind(f.validated_data["kind"]).accounts_for(side, accounts)
        return Response(accounts)

    def create(self, request):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_accounts)
        s = AccountIn(data=request.data)
        s.is_valid(raise_exception=True)
        account = client_for(ctx).create_account({"companyId": ctx.company_id, **s.validated_data})
        return Response(account, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_accounts)
        s = AccountIn(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        return Response(client_for(ctx).update_account(pk, s.validated_data))

    def destroy(self, request, pk=None):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_accounts)
        force = request.query_params.get("force", "").lower() in ("1", "true", "yes")
        return Response(client_for(ctx).delete_account(pk, company_id=ctx.company_id, force=force))

    @extend_schema(summary="Seed default chart of accounts", request=None, tags=["Accounts"])
    @action(detail=False, methods=["post"])
    def seed(self, request):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_accounts)
        accounts = client_for(ctx).seed_chart_of_accounts(ctx.company_id)
        return Response(accounts, status=status.HTTP_201_CREATED)


# ======================
# Transactions
# ======================
class TransactionViewSet(viewsets.ViewSet):
    """
    GET    /api/transactions/           -> list (backend filters pass through)
    POST   /api/transactions/           -> validate, assemble and create a manual journal entry
    POST   /api/transactions/expense/   -> expense shortcut
    POST   /api/transactions/revenue/   -> revenue shortcut
    GET    /api/transactions/{id}/      -> one transaction
    GET    /api/transactions/{id}/form/ -> the transaction as editable lines
    PATCH  /api/transactions/{id}/      -> edit (refused once reconciled)
    DELETE /api/transactions/{id}/      -> delete (refused once reconciled)
    """

    lookup_value_regex = "[^/]+"

    @extend_schema(summary="List transactions", parameters=[TransactionFilterIn], tags=["Transactions"])
    def list(self, request):
        ctx = resolve_session(request)
        f = TransactionFilterIn(data=request.query_params)
        f.is_valid(raise_exception=True)
        filters = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in f.validated_data.items()}
        return Response(client_for(ctx).get_transactions({"companyId": ctx.company_id, **filters}))

    @extend_schema(summary="Get transaction", tags=["Transactions"])
    def retrieve(self, request, pk=None):
        ctx = resolve_session(request)
        return Response(client_for(ctx).get_transaction(pk))

    @extend_schema(
        summary="Edit form for a transaction",
        description="The stored transaction as editable text fields: the header, one line per entry "
        "(zero amounts become blank) and whether it is locked by reconciliation.",
        responses={200: OpenApiTypes.OBJECT, 404: ErrorOut},
        tags=["Transactions"],
    )
    @action(detail=True, methods=["get"])
    def form(self, request, pk=None):
        ctx = resolve_session(request)
        transaction = client_for(ctx).get_transaction(pk)
        header = TransactionHeader(
            date=(transaction.get("date") or "").split("T")[0] or None,
            description=transaction.get("description") or "",
            reference=transaction.get("reference") or "",
            notes=transaction.get("notes") or "",
        )
        line_set = LineSet.from_entries(transaction.get("entries") or [])
        return Response(
            {
                "id": transaction.get("_id", pk),
                "header": asdict(header),
                **line_set.to_dict(),
                "reconciled": services.is_reconciled(transaction),
            }
        )

    @extend_schema(
        summary="Create a journal entry",
        description="Runs the journal checks (description, date, at least two postable lines, one side per "
        "line, balanced within 0.01, non-zero) and only then posts to the backend.",
        request=JournalEntryIn,
        responses={201: OpenApiTypes.OBJECT, 400: ErrorOut, 502: ErrorOut},
        tags=["Transactions"],
        examples=[
            OpenApiExample("Cash sale 25.00", request_only=True, value=BALANCED_ENTRY),
            OpenApiExample(
                "Unbalanced",
                response_only=True,
                status_codes=["400"],
                value={"detail": "Debits and credits must be equal. Difference: 0.01", "code": "UNBALANCED"},
            ),
        ],
    )
    def create(self, request):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_transactions)
        s = JournalEntryIn(data=request.data)
        s.is_valid(raise_exception=True)
        tx = services.submit_journal_entry(
            client=client_for(ctx), ctx=ctx, header=s.to_header(), line_set=s.to_line_set()
        )
        return Response(tx, status=status.HTTP_201_CREATED)

    def _shortcut(self, request, kind):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_transactions)
        s = ShortcutIn(data=request.data)
        s.is_valid(raise_exception=True)
        tx = services.record_shortcut(
            client=client_for(ctx),
            ctx=ctx,
            kind=kind,
            header=s.to_header(),
            amount=s.validated_data["amount"],
            debit_account_id=s.validated_data["debit_account_id"],
            credit_account_id=s.validated_data["credit_account_id"],
        )
        return Response(tx, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Record an expense",
        description="Debit an expense account, credit the asset or liability it was paid from.",
        request=ShortcutIn,
        responses={201: OpenApiTypes.OBJECT, 400: ErrorOut},
        tags=["Transactions"],
        examples=[
            OpenApiExample(
                "Office pens",
                request_only=True,
                value={
                    "date": "2025-08-23",
                    "description": "Pens",
                    "amount": "23.45",
                    "debit_account_id": "acc_office",
                    "credit_account_id": "acc_cash",
                },
            )
        ],
    )
    @action(detail=False, methods=["post"])
    def expense(self, request):
        return self._shortcut(request, EXPENSE)

    @extend_schema(
        summary="Record revenue",
        description="Debit the asset that received the money, credit a revenue account.",
        request=ShortcutIn,
        responses={201: OpenApiTypes.OBJECT, 400: ErrorOut},
        tags=["Transactions"],
    )
    @action(detail=False, methods=["post"])
    def revenue(self, request):
        return self._shortcut(request, REVENUE)

    @extend_schema(
        summary="Edit transaction",
        request=JournalEntryIn,
        responses={200: OpenApiTypes.OBJECT, 400: ErrorOut, 409: ErrorOut},
        tags=["Transactions"],
    )
    def partial_update(self, request, pk=None):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_transactions)
        s = JournalEntryIn(data=request.data)
        s.is_valid(raise_exception=True)
        client = client_for(ctx)
        transaction = client.get_transaction(pk)
        updated = services.update_transaction(
            client=client, ctx=ctx, transaction=transaction, header=s.to_header(), line_set=s.to_line_set()
        )
        return Response(updated)

    @extend_schema(summary="Delete transaction", responses={200: OpenApiTypes.OBJECT, 409: ErrorOut}, tags=["Transactions"])
    def destroy(self, request, pk=None):
        ctx = resolve_session(request)
        require(ctx, permissions.can_manage_transactions)
        client = client_for(ctx)
        transaction = client.get_transaction(pk)
        return Response(services.delete_transaction(client=client, ctx=ctx, transaction=transaction))


# ======================
# Journal entry form
# ======================
class JournalView(viewsets.ViewSet):
    """
    POST   /api/journal/preview/  -> balance and check result, nothing is sent
    GET    /api/journal/draft/    -> saved draft for ?kind= (404 when none)
    PUT    /api/journal/draft/    -> save the form as a draft
    DELETE /api/journal/draft/    -> discard the draft
    POST   /api/journal/draft/lines/ -> add, remove or commit a line of the draft
    """

    @extend_schema(
        summary="Preview a journal entry",
        description="Cleans the amounts, totals both sides and runs the journal checks without "
        "contacting the backend. `entries` is what would be posted.",
        request=JournalEntryIn,
        responses={200: PreviewOut},
        tags=["Journal"],
        examples=[OpenApiExample("Balanced", request_only=True, value=BALANCED_ENTRY)],
    )
    @action(detail=False, methods=["post"])
    def preview(self, request):
        ctx = resolve_session(request)
        s = JournalEntryIn(data=request.data)
        s.is_valid(raise_exception=True)
        header, line_set = s.to_header(), s.to_line_set()
        balance = calculate_balance(line_set.postable())
        result = validate(header, line_set)
        payload = build_create_request(company_id=ctx.company_id, header=header, line_set=line_set)
        return Response(
            {
                "balance": {
                    "totalDebit": str(balance.total_debit),
                    "totalCredit": str(balance.total_credit),
                    "difference": str(balance.difference),
                    "isBalanced": balance.is_balanced,
                },
                "validation": result.as_dict(),
                "lines": line_set.to_dict()["lines"],
                "entries": payload["entries"],
            }
        )

    @extend_schema(
        summary="Saved draft",
        parameters=[OpenApiParameter("kind", OpenApiTypes.STR, OpenApiParameter.QUERY)],
        responses={200: OpenApiTypes.OBJECT, 404: ErrorOut},
        tags=["Journal"],
        methods=["GET"],
    )
    @extend_schema(summary="Save draft", request=DraftIn, responses={200: OpenApiTypes.OBJECT}, tags=["Journal"], methods=["PUT"])
    @extend_schema(summary="Discard draft", responses={204: None}, tags=["Journal"], methods=["DELETE"])
    @action(detail=False, methods=["get", "put", "delete"])
    def draft(self, request):
        ctx = resolve_session(request)
        if request.method == "PUT":
            s = DraftIn(data=request.data)
            s.is_valid(raise_exception=True)
            saved = drafts.save_draft(ctx, s.to_header(), s.to_line_set(), kind=s.validated_data["kind"])
            return Response({"saved": saved})

        f = KindIn(data=request.query_params)
        f.is_valid(raise_exception=True)
        kind = f.validated_data["kind"]
        if request.method == "DELETE":
            drafts.clear_draft(ctx, kind)
            return Response(status=status.HTTP_204_NO_CONTENT)

        loaded = drafts.load_draft(ctx, kind)
        if loaded is None:
            header, line_set = TransactionHeader.today(), LineSet.blank()
            return Response(
                {"detail": "No saved draft.", "code": "NO_DRAFT", "blank": _form_state(kind, header, line_set)},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(_form_state(kind, *loaded))

    @extend_schema(
        summary="Edit a line of the saved draft",
        description="`add` appends a blank line, `remove` drops one (a form keeps at least two), "
        "`commit` cleans a typed amount the way the form does on blur and clears the other side "
        "of the line when the amount is positive. Returns the resulting form.",
        request=LineEditIn,
        responses={200: OpenApiTypes.OBJECT, 400: ErrorOut, 404: ErrorOut},
        tags=["Journal"],
        examples=[
            OpenApiExample(
                "Commit a debit",
                request_only=True,
                value={"kind": "manual", "op": "commit", "line_id": 0, "side": "debit", "value": "0012.999"},
            )
        ],
    )
    @action(detail=False, methods=["post"], url_path="draft/lines")
    def draft_lines(self, request):
        ctx = resolve_session(request)
        s = LineEditIn(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        kind = data["kind"]
        header, line_set = drafts.load_draft(ctx, kind) or (TransactionHeader.today(), LineSet.blank())

        try:
            if data["op"] == "add":
                line_set.add_line()
            elif data["op"] == "remove":
                line_set.remove_line(data["line_id"])
            else:
                line_set.commit_amount(data["line_id"], data["side"], data["value"])
        except KeyError:
            return Response(
                {"detail": "No such line in the draft.", "code": "UNKNOWN_LINE"}, status=status.HTTP_404_NOT_FOUND
            )

        drafts.save_draft(ctx, header, line_set, kind=kind)
        return Response(_form_state(kind, header, line_set))


def _form_state(kind, header, line_set):
    return {"kind": kind, "header": asdict(header), **line_set.to_dict()}
