"""Best-effort auto-save of in-progress journal entries.

Drafts are a convenience: a storage failure is logged and the entry form
keeps working. There is no protection against two tabs editing the same
draft; the last save wins.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional, Tuple

from django.db import DatabaseError

from .lines import LineSet, TransactionHeader
from .models import JournalDraft

logger = logging.getLogger(__name__)


def _key(ctx, kind: str) -> Optional[dict]:
    if not ctx.user_id or not ctx.company_id:
        return None
    return {"user_id": ctx.user_id, "company_id": ctx.company_id, "kind": kind}


def save_draft(ctx, header: TransactionHeader, line_set: LineSet, kind: str = "manual") -> bool:
    """Persist the form when it holds anything worth keeping."""
    key = _key(ctx, kind)
    if key is None or not (header.has_data or line_set.has_data):
        return False
    data = line_set.to_dict()
    try:
        JournalDraft.objects.update_or_create(
            **key,
            defaults={"header": asdict(header), "lines": data["lines"], "next_id": data["next_id"]},
        )
    except DatabaseError:
        logger.exception("Failed to save draft", extra=key)
        return False
    return True


def load_draft(ctx, kind: str = "manual") -> Optional[Tuple[TransactionHeader, LineSet]]:
    key = _key(ctx, kind)
    if key is None:
        return None
    try:
        draft = JournalDraft.objects.filter(**key).first()
    except DatabaseError:
        logger.exception("Failed to load draft", extra=key)
        return None
    if draft is None:
        return None
    try:
        if not isinstance(draft.header, dict) or not isinstance(draft.lines, list):
            raise TypeError("unexpected draft structure")
        header = TransactionHeader(**draft.header)
        line_set = LineSet.from_dict({"lines": draft.lines, "next_id": draft.next_id})
    except (TypeError, KeyError) as e:
        logger.warning("Ignoring malformed draft", extra={**key, "error": str(e)})
        return None
    return header, line_set


def clear_draft(ctx, kind: str = "manual") -> None:
    key = _key(ctx, kind)
    if key is None:
        return
    try:
        JournalDraft.objects.filter(**key).delete()
    except DatabaseError:
        logger.exception("Failed to clear draft", extra=key)
