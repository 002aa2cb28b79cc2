"""Map journal and backend failures onto ``{"detail", "code"}`` responses."""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from gateway.exceptions import ApiError
from journal.exceptions import JournalValidationError, ReconciledTransaction, SubmissionFailed
from journal.lines import MinimumLinesError

logger = logging.getLogger(__name__)

PASSTHROUGH_STATUSES = {401, 403, 404}


def exception_handler(exc, context):
    if isinstance(exc, JournalValidationError):
        data = {"detail": exc.result.message, "code": exc.result.reason.value}
        if exc.result.difference is not None:
            data["difference"] = str(exc.result.difference)
        return Response(data, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, MinimumLinesError):
        return Response({"detail": str(exc), "code": "MINIMUM_LINES"}, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, ReconciledTransaction):
        return Response({"detail": str(exc), "code": "RECONCILED"}, status=status.HTTP_409_CONFLICT)

    if isinstance(exc, SubmissionFailed):
        return Response({"detail": exc.message, "code": "SUBMISSION_FAILED"}, status=status.HTTP_502_BAD_GATEWAY)

    if isinstance(exc, ApiError):
        code = exc.status if exc.status in PASSTHROUGH_STATUSES else status.HTTP_502_BAD_GATEWAY
        logger.warning("Backend call failed", extra={"status": exc.status, "error": exc.message})
        return Response({"detail": exc.message, "code": "BACKEND_ERROR"}, status=code)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = {"detail": "Invalid input.", "code": "invalid", "errors": response.data}
    elif isinstance(exc, APIException) and isinstance(response.data, dict):
        codes = exc.get_codes()
        response.data.setdefault("code", codes if isinstance(codes, str) else "error")
    return response
