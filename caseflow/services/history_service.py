from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caseflow.errors import PersistenceError
from caseflow.models import CaseHistory, CaseState, CaseStateTransition

logger = logging.getLogger(__name__)


def record_history(
    db: Session,
    *,
    entity_type: str,
    entity_id: int,
    status_label: str,
    note: str | None,
    actor_id: int,
) -> CaseHistory:
    entry = CaseHistory(
        reference_type=entity_type,
        reference_id=entity_id,
        status=status_label,
        notes=note,
        created_by=actor_id,
    )
    db.add(entry)
    try:
        db.flush()
    except SQLAlchemyError as exc:
        logger.error('History write failed for %s %s (%s): %s', entity_type, entity_id, status_label, exc)
        raise PersistenceError(f'Could not record history for {entity_type} {entity_id}') from exc
    return entry


def record_state_transition(
    db: Session,
    *,
    case_id: int,
    from_state: CaseState | None,
    to_state: CaseState,
    actor_id: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> CaseStateTransition:
    transition = CaseStateTransition(
        case_id=case_id,
        from_state=from_state,
        to_state=to_state,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=actor_id,
    )
    db.add(transition)
    db.flush()
    return transition


def list_history(db: Session, *, entity_type: str, entity_id: int) -> list[CaseHistory]:
    return db.execute(
        select(CaseHistory)
        .where(CaseHistory.reference_type == entity_type, CaseHistory.reference_id == entity_id)
        .order_by(CaseHistory.created_at.asc(), CaseHistory.id.asc())
    ).scalars().all()


def case_timeline(db: Session, *, case_id: int) -> list[dict]:
    rows = db.execute(
        select(CaseStateTransition)
        .where(CaseStateTransition.case_id == case_id)
        .order_by(CaseStateTransition.created_at.asc(), CaseStateTransition.id.asc())
    ).scalars().all()
    return [
        {
            'id': row.id,
            'from_state': row.from_state.value if row.from_state else None,
            'to_state': row.to_state.value,
            'reference_type': row.reference_type,
            'reference_id': row.reference_id,
            'notes': row.notes,
            'created_by': row.created_by,
            'created_at': row.created_at,
        }
        for row in rows
    ]
