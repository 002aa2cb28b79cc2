import logging

from gateway.exceptions import ApiError

from . import drafts
from .assembler import build_create_request, build_update_request, shortcut_line_set
from .exceptions import JournalValidationError, ReconciledTransaction, SubmissionFailed
from .kinds import MANUAL
from .validation import validate

logger = logging.getLogger(__name__)


def _check(header, line_set, *, require_date=True):
    result = validate(header, line_set, require_date=require_date)
    if not result.ok:
        raise JournalValidationError(result)
    return result


def submit_journal_entry(*, client, ctx, header, line_set, kind=MANUAL):
    """
    Validate, assemble and create a transaction in the backend.

    Raises JournalValidationError before anything is sent, SubmissionFailed
    if the backend call fails. The line set and any saved draft are left
    untouched on failure so the user can resubmit.
    """
    _check(header, line_set)
    payload = build_create_request(company_id=ctx.company_id, header=header, line_set=line_set, kind=kind)
    try:
        created = client.create_transaction(payload)
    except ApiError as e:
        logger.warning(
            "Transaction submission failed",
            extra={"company_id": ctx.company_id, "source_type": kind.source_type, "error": e.message},
        )
        raise SubmissionFailed(e.message, status=e.status) from e

    logger.info(
        "Transaction created",
        extra={"company_id": ctx.company_id, "source_type": kind.source_type, "entries": len(payload["entries"])},
    )
    drafts.clear_draft(ctx, kind.name)
    return created


def record_shortcut(*, client, ctx, kind, header, amount, debit_account_id, credit_account_id):
    """Expense / revenue shortcut: one amount moved between two accounts."""
    line_set = shortcut_line_set(
        amount=amount,
        debit_account_id=debit_account_id,
        credit_account_id=credit_account_id,
        description=header.description,
    )
    return submit_journal_entry(client=client, ctx=ctx, header=header, line_set=line_set, kind=kind)


def is_reconciled(transaction):
    return bool(transaction.get("reconciledAt"))


def update_transaction(*, client, ctx, transaction, header, line_set):
    if is_reconciled(transaction):
        raise ReconciledTransaction("edit")
    _check(header, line_set)
    payload = build_update_request(header=header, line_set=line_set)
    try:
        updated = client.update_transaction(transaction["_id"], payload, ctx.company_id)
    except ApiError as e:
        logger.warning("Transaction update failed", extra={"transaction_id": transaction["_id"], "error": e.message})
        raise SubmissionFailed(e.message, status=e.status) from e
    logger.info("Transaction updated", extra={"transaction_id": transaction["_id"]})
    return updated


def delete_transaction(*, client, ctx, transaction):
    if is_reconciled(transaction):
        raise ReconciledTransaction("delete")
    try:
        result = client.delete_transaction(transaction["_id"], ctx.company_id)
    except ApiError as e:
        logger.warning("Transaction delete failed", extra={"transaction_id": transaction["_id"], "error": e.message})
        raise SubmissionFailed(e.message, status=e.status) from e
    logger.info("Transaction deleted", extra={"transaction_id": transaction["_id"]})
    return result
