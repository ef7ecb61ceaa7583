from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caseflow.errors import ConflictError, NotFoundError, PersistenceError, ValidationError, invalid_value
from caseflow.models import (
    BillOfMaterials,
    BomStatus,
    Case,
    CaseState,
    CaseStatus,
    EnquiryStatus,
    Estimation,
    EstimationStatus,
    Quotation,
    QuotationStatus,
    SalesEnquiry,
    SalesOrder,
    SalesOrderStatus,
    WorkOrder,
    WorkOrderStatus,
)
from caseflow.services import document_service
from caseflow.services.document_status_service import (
    change_status_guarded,
    get_document,
    record_quotation_status_change,
    resolve_kind,
)
from caseflow.services.history_service import record_history, record_state_transition

logger = logging.getLogger(__name__)

CASE_ENTITY = 'case'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error('Transaction rolled back after database error: %s', exc)
        raise PersistenceError('The operation could not be saved; no changes were applied') from exc
    except Exception:
        db.rollback()
        raise


@dataclass(frozen=True)
class ChildDocument:
    entity_type: str
    entity_id: int
    number: str


@dataclass(frozen=True)
class TransitionResult:
    case_id: int | None
    from_state: CaseState | None
    new_state: CaseState | None
    event: str
    child_documents: list[ChildDocument] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'case_id': self.case_id,
            'from_state': self.from_state.value if self.from_state else None,
            'new_state': self.new_state.value if self.new_state else None,
            'event': self.event,
            'child_documents': [
                {'entity_type': c.entity_type, 'entity_id': c.entity_id, 'number': c.number}
                for c in self.child_documents
            ],
        }


@dataclass(frozen=True)
class TransitionContext:
    case: Case | None
    document: object
    actor_id: int
    from_state: CaseState | None


SideEffect = Callable[[Session, TransitionContext], list[ChildDocument]]


@dataclass(frozen=True)
class TransitionRule:
    event: str
    from_state: CaseState
    to_state: CaseState
    entity_type: str
    document_from: tuple[Enum, ...] = ()
    document_to: Enum | None = None
    stamp: str | None = None
    side_effects: tuple[SideEffect, ...] = ()


# Open documents of each stage; archived (or cancelled) when the case leaves the stage backwards or is cancelled.
STAGE_DOCUMENTS: dict[CaseState, tuple[tuple[str, type, tuple[Enum, ...], Enum, Enum], ...]] = {
    CaseState.ENQUIRY: (
        (
            'sales_enquiry',
            SalesEnquiry,
            (EnquiryStatus.NEW, EnquiryStatus.ASSIGNED, EnquiryStatus.FOR_ESTIMATION),
            EnquiryStatus.CANCELLED,
            EnquiryStatus.CANCELLED,
        ),
    ),
    CaseState.ESTIMATION: (
        (
            'estimation',
            Estimation,
            (EstimationStatus.DRAFT, EstimationStatus.SUBMITTED, EstimationStatus.REJECTED),
            EstimationStatus.ARCHIVED,
            EstimationStatus.CANCELLED,
        ),
    ),
    CaseState.QUOTATION: (
        (
            'quotation',
            Quotation,
            (QuotationStatus.DRAFT, QuotationStatus.PENDING_APPROVAL, QuotationStatus.REJECTED),
            QuotationStatus.ARCHIVED,
            QuotationStatus.CANCELLED,
        ),
    ),
    CaseState.ORDER: (
        ('sales_order', SalesOrder, (SalesOrderStatus.DRAFT,), SalesOrderStatus.ARCHIVED, SalesOrderStatus.CANCELLED),
        ('bom', BillOfMaterials, (BomStatus.DRAFT,), BomStatus.ARCHIVED, BomStatus.CANCELLED),
    ),
    CaseState.PRODUCTION: (
        (
            'work_order',
            WorkOrder,
            (WorkOrderStatus.PLANNED, WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.ON_HOLD),
            WorkOrderStatus.CANCELLED,
            WorkOrderStatus.CANCELLED,
        ),
    ),
    CaseState.DELIVERY: (),
}


def _child(entity_type: str, row) -> ChildDocument:
    return ChildDocument(entity_type=entity_type, entity_id=row.id, number=getattr(row, resolve_kind(entity_type).number_field))


def _start_estimation(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    existing = db.execute(
        select(Estimation.id).where(
            Estimation.case_id == ctx.case.id,
            Estimation.status.not_in((EstimationStatus.ARCHIVED, EstimationStatus.CANCELLED)),
        )
    ).first()
    if existing is not None:
        return []
    estimation = document_service.create_estimation(db, enquiry_id=ctx.document.id, actor_id=ctx.actor_id)
    return [_child('estimation', estimation)]


def _quote_estimation(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    quotation = document_service.create_quotation_from_estimation(
        db, estimation_id=ctx.document.id, actor_id=ctx.actor_id
    )
    return [_child('quotation', quotation)]


def _order_quotation(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    order = document_service.create_sales_order_from_quotation(db, quotation_id=ctx.document.id, actor_id=ctx.actor_id)
    bom = document_service.create_bom_from_quotation(db, quotation_id=ctx.document.id, actor_id=ctx.actor_id)
    return [_child('sales_order', order), _child('bom', bom)]


def _start_production(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    work_order = document_service.create_work_order(db, sales_order_id=ctx.document.id, actor_id=ctx.actor_id)
    record_history(
        db,
        entity_type='sales_order',
        entity_id=ctx.document.id,
        status_label=SalesOrderStatus.IN_PRODUCTION.value,
        note=f'Production started under work order {work_order.work_order_id}',
        actor_id=ctx.actor_id,
    )
    return [_child('work_order', work_order)]


def _ready_for_dispatch(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    order_id = ctx.document.sales_order_id
    change_status_guarded(
        db,
        entity_type='sales_order',
        entity_id=order_id,
        from_statuses=(SalesOrderStatus.IN_PRODUCTION,),
        to_status=SalesOrderStatus.READY_FOR_DISPATCH,
    )
    record_history(
        db,
        entity_type='sales_order',
        entity_id=order_id,
        status_label=SalesOrderStatus.READY_FOR_DISPATCH.value,
        note=f'Work order {ctx.document.work_order_id} completed',
        actor_id=ctx.actor_id,
    )
    return []


def _complete_case(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    closed_at = _now()
    db.execute(
        update(Case).where(Case.id == ctx.case.id).values(status=CaseStatus.COMPLETED, closed_at=closed_at)
    )
    enquiry_ids = db.execute(
        select(SalesEnquiry.id).where(
            SalesEnquiry.case_id == ctx.case.id,
            SalesEnquiry.status.not_in((EnquiryStatus.CLOSED, EnquiryStatus.CANCELLED)),
        )
    ).scalars().all()
    for enquiry_id in enquiry_ids:
        change_status_guarded(
            db,
            entity_type='sales_enquiry',
            entity_id=enquiry_id,
            from_statuses=(EnquiryStatus.NEW, EnquiryStatus.ASSIGNED, EnquiryStatus.FOR_ESTIMATION),
            to_status=EnquiryStatus.CLOSED,
            values={'closed_at': closed_at},
        )
        record_history(
            db,
            entity_type='sales_enquiry',
            entity_id=enquiry_id,
            status_label=EnquiryStatus.CLOSED.value,
            note='Closed on delivery',
            actor_id=ctx.actor_id,
        )
    return []


def _sweep_stage(db: Session, *, case_id: int, stage: CaseState, actor_id: int, cancel: bool, note: str) -> int:
    swept = 0
    for entity_type, model, open_statuses, archived, cancelled in STAGE_DOCUMENTS.get(stage, ()):
        target = cancelled if cancel else archived
        ids = db.execute(
            select(model.id).where(model.case_id == case_id, model.status.in_(open_statuses))
        ).scalars().all()
        for entity_id in ids:
            change_status_guarded(
                db, entity_type=entity_type, entity_id=entity_id, from_statuses=open_statuses, to_status=target
            )
            record_history(
                db, entity_type=entity_type, entity_id=entity_id, status_label=target.value, note=note, actor_id=actor_id
            )
            swept += 1
    return swept


def _archive_left_stage(db: Session, ctx: TransitionContext) -> list[ChildDocument]:
    _sweep_stage(
        db,
        case_id=ctx.case.id,
        stage=ctx.from_state,
        actor_id=ctx.actor_id,
        cancel=False,
        note=f'Archived when the case moved back from {ctx.from_state.value}',
    )
    return []


FORWARD_PATH: tuple[CaseState, ...] = (
    CaseState.ENQUIRY,
    CaseState.ESTIMATION,
    CaseState.QUOTATION,
    CaseState.ORDER,
    CaseState.PRODUCTION,
    CaseState.DELIVERY,
    CaseState.CLOSED,
)

TRANSITION_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(
        event='estimation_started',
        from_state=CaseState.ENQUIRY,
        to_state=CaseState.ESTIMATION,
        entity_type='sales_enquiry',
        document_from=(EnquiryStatus.NEW, EnquiryStatus.ASSIGNED),
        document_to=EnquiryStatus.FOR_ESTIMATION,
        side_effects=(_start_estimation,),
    ),
    TransitionRule(
        event='estimation_approved',
        from_state=CaseState.ESTIMATION,
        to_state=CaseState.QUOTATION,
        entity_type='estimation',
        document_from=(EstimationStatus.DRAFT, EstimationStatus.SUBMITTED),
        document_to=EstimationStatus.APPROVED,
        stamp='approved',
        side_effects=(_quote_estimation,),
    ),
    TransitionRule(
        event='quotation_approved',
        from_state=CaseState.QUOTATION,
        to_state=CaseState.ORDER,
        entity_type='quotation',
        document_from=(QuotationStatus.DRAFT, QuotationStatus.PENDING_APPROVAL),
        document_to=QuotationStatus.APPROVED,
        stamp='approved',
        side_effects=(_order_quotation,),
    ),
    TransitionRule(
        event='quotation_rejected',
        from_state=CaseState.QUOTATION,
        to_state=CaseState.ESTIMATION,
        entity_type='quotation',
        document_from=(QuotationStatus.PENDING_APPROVAL,),
        document_to=QuotationStatus.REJECTED,
    ),
    TransitionRule(
        event='order_confirmed',
        from_state=CaseState.ORDER,
        to_state=CaseState.PRODUCTION,
        entity_type='sales_order',
        document_from=(SalesOrderStatus.DRAFT,),
        document_to=SalesOrderStatus.CONFIRMED,
        stamp='approved',
        side_effects=(_start_production,),
    ),
    TransitionRule(
        event='production_completed',
        from_state=CaseState.PRODUCTION,
        to_state=CaseState.DELIVERY,
        entity_type='work_order',
        document_from=(WorkOrderStatus.PLANNED, WorkOrderStatus.IN_PROGRESS),
        document_to=WorkOrderStatus.COMPLETED,
        stamp='completed',
        side_effects=(_ready_for_dispatch,),
    ),
    TransitionRule(
        event='delivery_completed',
        from_state=CaseState.DELIVERY,
        to_state=CaseState.CLOSED,
        entity_type='sales_order',
        document_from=(SalesOrderStatus.READY_FOR_DISPATCH, SalesOrderStatus.DISPATCHED),
        document_to=SalesOrderStatus.DELIVERED,
        side_effects=(_complete_case,),
    ),
) + tuple(
    TransitionRule(
        event='stage_reverted',
        from_state=later,
        to_state=earlier,
        entity_type=CASE_ENTITY,
        side_effects=(_archive_left_stage,),
    )
    for earlier, later in zip(FORWARD_PATH[:-2], FORWARD_PATH[1:-1])
)

RULES_BY_EVENT: dict[tuple[CaseState, str], TransitionRule] = {(r.from_state, r.event): r for r in TRANSITION_RULES}
RULES_BY_TARGET: dict[tuple[CaseState, str, CaseState], TransitionRule] = {
    (r.from_state, r.entity_type, r.to_state): r for r in TRANSITION_RULES
}


def allowed_transitions(state: CaseState) -> list[CaseState]:
    targets: list[CaseState] = []
    for rule in TRANSITION_RULES:
        if rule.from_state == state and rule.to_state not in targets:
            targets.append(rule.to_state)
    return targets


def find_rule(
    from_state: CaseState,
    *,
    entity_type: str | None = None,
    to_state: CaseState | None = None,
    event: str | None = None,
) -> TransitionRule | None:
    if event is not None:
        return RULES_BY_EVENT.get((from_state, event))
    return RULES_BY_TARGET.get((from_state, entity_type, to_state))


def _parse_state(value: CaseState | str) -> CaseState:
    try:
        return CaseState(value)
    except ValueError:
        raise invalid_value('case state', value, [s.value for s in CaseState]) from None


def _lock_case(db: Session, case_id: int) -> Case:
    case = db.execute(
        select(Case).where(Case.id == case_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if case is None:
        raise NotFoundError(f'Case {case_id} not found')
    return case


def _stamp_values(rule: TransitionRule, actor_id: int) -> dict:
    if rule.stamp == 'approved':
        return {'approved_by': actor_id, 'approved_at': _now()}
    if rule.stamp == 'completed':
        return {'completed_at': _now()}
    return {}


def _apply_document_change(db: Session, *, rule: TransitionRule, document, actor_id: int) -> None:
    old_status = document.status
    change_status_guarded(
        db,
        entity_type=rule.entity_type,
        entity_id=document.id,
        from_statuses=rule.document_from,
        to_status=rule.document_to,
        values=_stamp_values(rule, actor_id),
    )
    if rule.entity_type == 'quotation':
        record_quotation_status_change(
            db, quotation_id=document.id, old=old_status.value, new=rule.document_to.value, actor_id=actor_id
        )


def _move_case(db: Session, *, case: Case, rule: TransitionRule) -> None:
    result = db.execute(
        update(Case)
        .where(Case.id == case.id, Case.current_state == rule.from_state, Case.status == CaseStatus.ACTIVE)
        .values(current_state=rule.to_state, updated_at=_now())
    )
    if result.rowcount != 1:
        logger.warning('Case %s moved concurrently; %s refused', case.case_number, rule.event)
        raise ConflictError(f'Case {case.case_number} is no longer in {rule.from_state.value}')


def transition_case(
    db: Session,
    *,
    case_id: int,
    entity_type: str,
    entity_id: int,
    target_state: CaseState | str,
    actor_id: int,
    notes: str | None = None,
    expected_state: CaseState | str | None = None,
) -> TransitionResult:
    """
    Move a case to target_state on behalf of one of its documents.

    The document status change, the case move, the transition row, child documents and
    history entries are committed together; any failure leaves all of them untouched.
    """
    with unit_of_work(db):
        case = _lock_case(db, case_id)
        target = _parse_state(target_state)
        current = case.current_state

        if expected_state is not None and _parse_state(expected_state) != current:
            logger.warning('Case %s is %s, caller expected %s', case.case_number, current.value, expected_state)
            raise ConflictError(f'Case {case.case_number} is {current.value}, not {_parse_state(expected_state).value}')
        if case.status != CaseStatus.ACTIVE:
            raise ConflictError(f'Case {case.case_number} is {case.status.value}')
        if current == target:
            raise ConflictError(f'Case {case.case_number} is already {current.value}')

        rule = find_rule(current, entity_type=entity_type, to_state=target)
        if rule is None:
            permitted = [s.value for s in allowed_transitions(current)]
            raise ValidationError(
                f"Cannot move case {case.case_number} from {current.value} to {target.value} via {entity_type}. "
                f"Valid targets are: {', '.join(permitted) or 'none'}"
            )

        if entity_type == CASE_ENTITY:
            if entity_id != case.id:
                raise ValidationError(f'Stage reversal must reference case {case.id}')
            document = case
        else:
            document = get_document(db, entity_type, entity_id, for_update=True)
            if document.case_id != case.id:
                raise ValidationError(
                    f'{entity_type.replace("_", " ").capitalize()} {entity_id} does not belong to case {case.case_number}'
                )
            _apply_document_change(db, rule=rule, document=document, actor_id=actor_id)

        _move_case(db, case=case, rule=rule)
        record_state_transition(
            db,
            case_id=case.id,
            from_state=current,
            to_state=rule.to_state,
            actor_id=actor_id,
            reference_type=entity_type,
            reference_id=entity_id,
            notes=notes,
        )

        ctx = TransitionContext(case=case, document=document, actor_id=actor_id, from_state=current)
        children: list[ChildDocument] = []
        for effect in rule.side_effects:
            children.extend(effect(db, ctx))

        record_history(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            status_label=rule.document_to.value if rule.document_to else rule.to_state.value,
            note=notes or f'{rule.event.replace("_", " ").capitalize()}: case moved {current.value} -> {rule.to_state.value}',
            actor_id=actor_id,
        )

    logger.info(
        'Case %s %s -> %s (%s by %s), %d child document(s)',
        case.case_number,
        current.value,
        rule.to_state.value,
        rule.event,
        actor_id,
        len(children),
    )
    return TransitionResult(
        case_id=case.id, from_state=current, new_state=rule.to_state, event=rule.event, child_documents=children
    )


def approve_quotation(db: Session, *, quotation_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
    quotation = get_document(db, 'quotation', quotation_id)
    if quotation.deleted_at is not None:
        raise NotFoundError(f'Quotation {quotation_id} not found')
    if quotation.case_id is not None:
        return transition_case(
            db,
            case_id=quotation.case_id,
            entity_type='quotation',
            entity_id=quotation.id,
            target_state=CaseState.ORDER,
            actor_id=actor_id,
            notes=notes,
            expected_state=CaseState.QUOTATION,
        )

    # Quotations raised outside a case still get their order documents.
    rule = find_rule(CaseState.QUOTATION, event='quotation_approved')
    with unit_of_work(db):
        document = get_document(db, 'quotation', quotation_id, for_update=True)
        _apply_document_change(db, rule=rule, document=document, actor_id=actor_id)
        ctx = TransitionContext(case=None, document=document, actor_id=actor_id, from_state=None)
        children = _order_quotation(db, ctx)
        record_history(
            db,
            entity_type='quotation',
            entity_id=document.id,
            status_label=QuotationStatus.APPROVED.value,
            note=notes or 'Quotation approved',
            actor_id=actor_id,
        )
    logger.info('Quotation %s approved outside a case by %s', document.quotation_id, actor_id)
    return TransitionResult(case_id=None, from_state=None, new_state=None, event=rule.event, child_documents=children)


def open_case(
    db: Session,
    *,
    enquiry_id: int,
    actor_id: int,
    initial_state: CaseState | str = CaseState.ENQUIRY,
    notes: str | None = None,
) -> Case:
    state = _parse_state(initial_state)
    with unit_of_work(db):
        enquiry = get_document(db, 'sales_enquiry', enquiry_id, for_update=True)
        if enquiry.deleted_at is not None:
            raise NotFoundError(f'Sales enquiry {enquiry_id} not found')
        case = document_service.create_case(db, enquiry=enquiry, actor_id=actor_id, initial_state=state, notes=notes)
    return case


def cancel_case(
    db: Session,
    *,
    case_id: int,
    actor_id: int,
    reason: str,
    notes: str | None = None,
) -> TransitionResult:
    if not (reason or '').strip():
        raise ValidationError('A cancellation reason is required')

    with unit_of_work(db):
        case = _lock_case(db, case_id)
        current = case.current_state
        if current == CaseState.CLOSED:
            raise ConflictError(f'Case {case.case_number} is already closed')

        closed_at = _now()
        result = db.execute(
            update(Case)
            .where(Case.id == case.id, Case.current_state == current)
            .values(
                current_state=CaseState.CLOSED,
                status=CaseStatus.CANCELLED,
                closed_at=closed_at,
                updated_at=closed_at,
            )
        )
        if result.rowcount != 1:
            logger.warning('Case %s moved concurrently; cancellation refused', case.case_number)
            raise ConflictError(f'Case {case.case_number} is no longer in {current.value}')

        detail = f'Cancelled: {reason.strip()}' + (f' ({notes})' if notes else '')
        record_state_transition(
            db,
            case_id=case.id,
            from_state=current,
            to_state=CaseState.CLOSED,
            actor_id=actor_id,
            reference_type=CASE_ENTITY,
            reference_id=case.id,
            notes=detail,
        )
        swept = _sweep_stage(db, case_id=case.id, stage=current, actor_id=actor_id, cancel=True, note=detail)
        record_history(
            db,
            entity_type=CASE_ENTITY,
            entity_id=case.id,
            status_label=CaseStatus.CANCELLED.value,
            note=detail,
            actor_id=actor_id,
        )

    logger.info('Case %s cancelled from %s by %s; %d open document(s) cancelled', case.case_number, current.value, actor_id, swept)
    return TransitionResult(case_id=case.id, from_state=current, new_state=CaseState.CLOSED, event='case_cancelled')
