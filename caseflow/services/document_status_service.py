from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caseflow.config import settings
from caseflow.errors import ConflictError, NotFoundError, ValidationError, invalid_value
from caseflow.models import (
    BillOfMaterials,
    BomStatus,
    EnquiryStatus,
    Estimation,
    EstimationStatus,
    PurchaseRequisition,
    PurchaseRequisitionStatus,
    Quotation,
    QuotationStatus,
    QuotationStatusHistory,
    SalesEnquiry,
    SalesOrder,
    SalesOrderStatus,
    Ticket,
    TicketStatus,
    WorkOrder,
    WorkOrderStatus,
)
from caseflow.services.history_service import record_history

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentKind:
    entity_type: str
    model: type
    statuses: type[Enum]
    number_field: str
    # Statuses only the case workflow may set, because they fan out into other documents.
    orchestrated: frozenset[str] = frozenset()


DOCUMENT_KINDS: dict[str, DocumentKind] = {
    kind.entity_type: kind
    for kind in (
        DocumentKind('sales_enquiry', SalesEnquiry, EnquiryStatus, 'enquiry_id'),
        DocumentKind('estimation', Estimation, EstimationStatus, 'estimation_id', frozenset({'approved'})),
        DocumentKind('quotation', Quotation, QuotationStatus, 'quotation_id', frozenset({'approved', 'rejected'})),
        DocumentKind('sales_order', SalesOrder, SalesOrderStatus, 'sales_order_id', frozenset({'confirmed', 'delivered'})),
        DocumentKind('bom', BillOfMaterials, BomStatus, 'bom_number'),
        DocumentKind('purchase_requisition', PurchaseRequisition, PurchaseRequisitionStatus, 'requisition_id'),
        DocumentKind('work_order', WorkOrder, WorkOrderStatus, 'work_order_id', frozenset({'completed'})),
        DocumentKind('ticket', Ticket, TicketStatus, 'ticket_number'),
    )
}

ENTITY_STATUSES: dict[str, list[str]] = {
    name: [member.value for member in kind.statuses] for name, kind in DOCUMENT_KINDS.items()
}

SUBMIT_TARGETS: dict[str, tuple[Enum, Enum]] = {
    'estimation': (EstimationStatus.DRAFT, EstimationStatus.SUBMITTED),
    'quotation': (QuotationStatus.DRAFT, QuotationStatus.PENDING_APPROVAL),
    'purchase_requisition': (PurchaseRequisitionStatus.DRAFT, PurchaseRequisitionStatus.PENDING_APPROVAL),
}

DIRECT_APPROVALS: dict[str, tuple[Enum, ...]] = {
    'bom': (BomStatus.DRAFT,),
    'purchase_requisition': (PurchaseRequisitionStatus.PENDING_APPROVAL,),
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def resolve_kind(entity_type: str) -> DocumentKind:
    kind = DOCUMENT_KINDS.get(entity_type)
    if kind is None:
        raise invalid_value('entity type', entity_type, sorted(DOCUMENT_KINDS))
    return kind


def validate_status(entity_type: str, status: str) -> Enum:
    kind = resolve_kind(entity_type)
    try:
        return kind.statuses(status)
    except ValueError:
        raise invalid_value(f'{entity_type} status', status, ENTITY_STATUSES[entity_type]) from None


def get_document(db: Session, entity_type: str, entity_id: int, *, for_update: bool = False):
    kind = resolve_kind(entity_type)
    stmt = select(kind.model).where(kind.model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = db.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFoundError(f'{entity_type.replace("_", " ").capitalize()} {entity_id} not found')
    return row


def change_status_guarded(
    db: Session,
    *,
    entity_type: str,
    entity_id: int,
    from_statuses: tuple[Enum, ...],
    to_status: Enum,
    values: dict | None = None,
) -> None:
    """
    Move a document to to_status only if it is currently in one of from_statuses.

    The status check lives in the UPDATE itself, so of two racing callers exactly one matches a row.
    """
    kind = resolve_kind(entity_type)
    model = kind.model
    payload = {'status': to_status, **(values or {})}
    if hasattr(model, 'updated_at'):
        payload.setdefault('updated_at', _now())
    result = db.execute(
        update(model)
        .where(model.id == entity_id, model.status.in_(from_statuses))
        .values(**payload)
    )
    if result.rowcount == 1:
        return

    current = db.execute(
        select(getattr(model, kind.number_field), model.status).where(model.id == entity_id)
    ).one_or_none()
    if current is None:
        raise NotFoundError(f'{entity_type.replace("_", " ").capitalize()} {entity_id} not found')
    number, status = current
    allowed = ', '.join(s.value for s in from_statuses)
    logger.warning('%s %s status conflict: expected one of [%s], found %s', entity_type, number, allowed, status.value)
    raise ConflictError(
        f'{entity_type.replace("_", " ").capitalize()} {number} is {status.value}; expected one of: {allowed}'
    )


def record_quotation_status_change(db: Session, *, quotation_id: int, old: str, new: str, actor_id: int) -> None:
    # Optional table: a failure here must not abort the status change itself.
    try:
        with db.begin_nested():
            db.add(QuotationStatusHistory(quotation_id=quotation_id, old_status=old, new_status=new, changed_by=actor_id))
    except SQLAlchemyError as exc:
        logger.warning('Quotation status history skipped for quotation %s: %s', quotation_id, exc)


def update_document_status(
    db: Session,
    *,
    entity_type: str,
    entity_id: int,
    status: str,
    actor_id: int,
    note: str | None = None,
) -> tuple[str, str]:
    target = validate_status(entity_type, status)
    kind = resolve_kind(entity_type)
    if target.value in kind.orchestrated:
        raise ValidationError(
            f"Status '{target.value}' for {entity_type} is set by the case workflow; use a case transition"
        )

    document = get_document(db, entity_type, entity_id, for_update=True)
    old_status = document.status.value
    if old_status == target.value:
        raise ConflictError(f'{entity_type.replace("_", " ").capitalize()} is already {old_status}')

    change_status_guarded(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        from_statuses=(document.status,),
        to_status=target,
    )
    if entity_type == 'quotation':
        record_quotation_status_change(
            db, quotation_id=entity_id, old=old_status, new=target.value, actor_id=actor_id
        )
    record_history(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        status_label=target.value,
        note=note or f'Status updated from {old_status} to {target.value}',
        actor_id=actor_id,
    )
    logger.info('%s %s status %s -> %s by %s', entity_type, entity_id, old_status, target.value, actor_id)
    return old_status, target.value


def submit_for_approval(db: Session, *, entity_type: str, entity_id: int, actor_id: int) -> Enum:
    if entity_type not in SUBMIT_TARGETS:
        raise invalid_value('entity type for approval submission', entity_type, sorted(SUBMIT_TARGETS))
    draft, pending = SUBMIT_TARGETS[entity_type]
    document = get_document(db, entity_type, entity_id)

    if entity_type == 'quotation':
        profit = document.profit_percentage
        if profit is not None and Decimal(profit) < Decimal(settings.low_profit_threshold_percent):
            record_history(
                db,
                entity_type=entity_type,
                entity_id=entity_id,
                status_label='warning',
                note=f'Submitted for approval with profit percentage below {settings.low_profit_threshold_percent}%',
                actor_id=actor_id,
            )

    change_status_guarded(db, entity_type=entity_type, entity_id=entity_id, from_statuses=(draft,), to_status=pending)
    record_history(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        status_label=pending.value,
        note='Submitted for approval',
        actor_id=actor_id,
    )
    return pending


def reject_document(db: Session, *, entity_type: str, entity_id: int, actor_id: int, note: str | None = None) -> Enum:
    """Send a document awaiting approval back to draft."""
    if entity_type not in SUBMIT_TARGETS:
        raise invalid_value('entity type for rejection', entity_type, sorted(SUBMIT_TARGETS))
    draft, pending = SUBMIT_TARGETS[entity_type]
    change_status_guarded(db, entity_type=entity_type, entity_id=entity_id, from_statuses=(pending,), to_status=draft)
    record_history(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        status_label='rejected',
        note=note or 'Returned to draft',
        actor_id=actor_id,
    )
    return draft


def approve_document(db: Session, *, entity_type: str, entity_id: int, actor_id: int, note: str | None = None) -> Enum:
    if entity_type not in DIRECT_APPROVALS:
        raise invalid_value('entity type for direct approval', entity_type, sorted(DIRECT_APPROVALS))
    kind = resolve_kind(entity_type)
    approved = kind.statuses('approved')
    change_status_guarded(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        from_statuses=DIRECT_APPROVALS[entity_type],
        to_status=approved,
        values={'approved_by': actor_id, 'approved_at': _now()},
    )
    record_history(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        status_label=approved.value,
        note=note or f'{entity_type.replace("_", " ").capitalize()} approved',
        actor_id=actor_id,
    )
    return approved
