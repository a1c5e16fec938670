# Overview: Service-layer operations for the audit ledger.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Ledger invariants

- Append-only audit log for cross-cutting business events.
- No business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is business time; created_at is system time (DB default).
- As-of filtering in the read API is inclusive: occurred_at <= as_of.
"""


def append_ledger_event(
    *,
    shop_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | str | None = None,
) -> LedgerEvent:
    """
    Append one event to the shop's ledger.

    Flushes so the id is assigned; never commits.
    """
    if isinstance(payload, dict):
        payload = json.dumps(payload, sort_keys=True, default=str)

    ev = LedgerEvent(
        shop_id=shop_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_ledger_events(
    *,
    shop_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_type: str | None = None,
    event_category: str | None = None,
    as_of: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[LedgerEvent], int]:
    """Newest first. as_of is inclusive."""
    q = db.session.query(LedgerEvent).filter(LedgerEvent.shop_id == shop_id)

    if entity_type:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if event_type:
        q = q.filter(LedgerEvent.event_type == event_type)
    if event_category:
        q = q.filter(LedgerEvent.event_category == event_category)
    if as_of is not None:
        q = q.filter(LedgerEvent.occurred_at <= as_of)

    total = q.count()
    rows = (
        q.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
