"""API report views.

Simple GET endpoints that fetch the selected company's reports from the
accounting backend: trial balance, income statement, balance sheet and
general ledger. Views accept ISO date query parameters and return the
backend's report data unchanged.
"""

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiTypes

from gateway import permissions
from gateway.client import client_for

from .authz import require, resolve_session
from .serializers import ReportFilterIn


def _date_param(name, description, required=False):
    return OpenApiParameter(
        name=name,
        type=OpenApiTypes.DATE,
        location=OpenApiParameter.QUERY,
        required=required,
        description=description,
    )


START = _date_param("startDate", "Start date inclusive (YYYY-MM-DD)")
END = _date_param("endDate", "End date inclusive (YYYY-MM-DD)")
AS_OF = _date_param("asOfDate", "Point-in-time date (YYYY-MM-DD)")


def _report_request(request):
    """Resolve the session and return ``(client, filters)`` scoped to the selected company."""
    ctx = resolve_session(request)
    require(ctx, permissions.can_view_accounts)
    f = ReportFilterIn(data=request.query_params)
    f.is_valid(raise_exception=True)
    filters = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in f.validated_data.items()}
    return client_for(ctx), {"companyId": ctx.company_id, **filters}


@extend_schema(
    summary="Income Statement (Profit & Loss)",
    parameters=[START, END],
    responses={200: None},
    tags=["Reports"],
)
@api_view(["GET"])
def income_statement_view(request):
    """Revenues and expenses over a period and the resulting net profit or loss."""
    client, filters = _report_request(request)
    if not filters.get("startDate") or not filters.get("endDate"):
        return Response(
            {"detail": "Query params 'startDate' and 'endDate' (YYYY-MM-DD) are required.", "code": "invalid"},
            status=status.HTTP_400_BAD_REQUEST,
        )
    return Response(client.get_income_statement(filters))


@extend_schema(
    summary="Balance Sheet",
    parameters=[AS_OF],
    responses={200: None},
    tags=["Reports"],
)
@api_view(["GET"])
def balance_sheet_view(request):
    """Assets, liabilities and equity at a point in time.

    Without `asOfDate` the backend reports as of today.
    """
    client, filters = _report_request(request)
    return Response(client.get_balance_sheet(filters))


@extend_schema(
    summary="Trial Balance",
    description="Provide either `asOfDate` OR `startDate`/`endDate`.",
    parameters=[AS_OF, START, END],
    responses={200: None},
    tags=["Reports"],
)
@api_view(["GET"])
def trial_balance_view(request):
    """Debit and credit totals per account for a point in time or a period."""
    client, filters = _report_request(request)
    if filters.get("asOfDate") and (filters.get("startDate") or filters.get("endDate")):
        return Response(
            {"detail": "Provide either 'asOfDate' or 'startDate'+'endDate', not both.", "code": "invalid"},
            status=status.HTTP_400_BAD_REQUEST,
        )
    return Response(client.get_trial_balance(filters))


@extend_schema(
    summary="General Ledger",
    parameters=[
        START,
        END,
        OpenApiParameter("accountId", OpenApiTypes.STR, OpenApiParameter.QUERY, description="Limit to one account"),
    ],
    responses={200: None},
    tags=["Reports"],
)
@api_view(["GET"])
def general_ledger_view(request):
    """Every posted entry per account with running balances."""
    client, filters = _report_request(request)
    return Response(client.get_general_ledger(filters))
