from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from caseflow.config import settings
from caseflow.errors import ConflictError, NotFoundError, ValidationError, invalid_value
from caseflow.models import (
    BillOfMaterials,
    BomItem,
    BomStatus,
    Case,
    CaseState,
    Estimation,
    EstimationItem,
    EstimationStatus,
    PurchaseRequisition,
    PurchaseRequisitionItem,
    Quotation,
    QuotationItem,
    QuotationStatus,
    SalesEnquiry,
    SalesOrder,
    SalesOrderItem,
    SalesOrderStatus,
    Ticket,
    WorkOrder,
)
from caseflow.services.document_math_service import (
    LineInput,
    compute_document_totals,
    compute_line_totals,
    line_input_from_row,
)
from caseflow.services.document_number_service import DocumentType, allocate_document_number
from caseflow.services.document_status_service import change_status_guarded, get_document
from caseflow.services.history_service import record_history, record_state_transition

logger = logging.getLogger(__name__)

PRIORITIES = ('low', 'medium', 'high', 'urgent')
TICKET_CATEGORIES = ('support', 'warranty', 'installation', 'complaint', 'service')


def _check_priority(priority: str) -> str:
    if priority not in PRIORITIES:
        raise invalid_value('priority', priority, PRIORITIES)
    return priority


def _live_enquiry(db: Session, enquiry_id: int) -> SalesEnquiry:
    enquiry = get_document(db, 'sales_enquiry', enquiry_id)
    if enquiry.deleted_at is not None:
        raise NotFoundError(f'Sales enquiry {enquiry_id} not found')
    return enquiry


def _live_quotation(db: Session, quotation_id: int) -> Quotation:
    quotation = get_document(db, 'quotation', quotation_id)
    if quotation.deleted_at is not None:
        raise NotFoundError(f'Quotation {quotation_id} not found')
    return quotation


def create_enquiry(
    db: Session,
    *,
    client_id: int,
    project_name: str,
    actor_id: int,
    description: str | None = None,
) -> SalesEnquiry:
    name = (project_name or '').strip()
    if not name:
        raise ValidationError('Project name is required')

    enquiry = SalesEnquiry(
        enquiry_id=allocate_document_number(db, DocumentType.ENQUIRY),
        client_id=client_id,
        project_name=name,
        description=description,
        enquiry_by=actor_id,
    )
    db.add(enquiry)
    db.flush()
    record_history(
        db,
        entity_type='sales_enquiry',
        entity_id=enquiry.id,
        status_label=enquiry.status.value,
        note=f'Enquiry {enquiry.enquiry_id} created',
        actor_id=actor_id,
    )
    return enquiry


def create_case(
    db: Session,
    *,
    enquiry: SalesEnquiry,
    actor_id: int,
    initial_state: CaseState = CaseState.ENQUIRY,
    notes: str | None = None,
) -> Case:
    """Mint a case for an enquiry and record its entry into the initial state."""
    if enquiry.case_id is not None:
        raise ConflictError(f'Enquiry {enquiry.enquiry_id} already belongs to case {enquiry.case_id}')
    if initial_state not in (CaseState.ENQUIRY, CaseState.ESTIMATION):
        raise ValidationError(f"A case cannot be opened at '{initial_state.value}'")

    case = Case(
        case_number=allocate_document_number(db, DocumentType.CASE),
        client_id=enquiry.client_id,
        project_name=enquiry.project_name,
        requirements=enquiry.description,
        current_state=initial_state,
        notes=notes,
        created_by=actor_id,
    )
    db.add(case)
    db.flush()
    enquiry.case_id = case.id
    record_state_transition(
        db,
        case_id=case.id,
        from_state=None,
        to_state=initial_state,
        actor_id=actor_id,
        reference_type='sales_enquiry',
        reference_id=enquiry.id,
        notes=f'Case opened from enquiry {enquiry.enquiry_id}',
    )
    record_history(
        db,
        entity_type='case',
        entity_id=case.id,
        status_label=initial_state.value,
        note=f'Case {case.case_number} opened',
        actor_id=actor_id,
    )
    logger.info('Opened case %s at %s for enquiry %s', case.case_number, initial_state.value, enquiry.enquiry_id)
    return case


def create_estimation(
    db: Session,
    *,
    enquiry_id: int,
    actor_id: int,
    lines: list[LineInput] | None = None,
    notes: str | None = None,
    estimation_date: date | None = None,
) -> Estimation:
    enquiry = _live_enquiry(db, enquiry_id)
    if enquiry.case_id is None:
        create_case(db, enquiry=enquiry, actor_id=actor_id, initial_state=CaseState.ESTIMATION)

    totals = compute_document_totals(lines or [])
    estimation = Estimation(
        estimation_id=allocate_document_number(db, DocumentType.ESTIMATION),
        enquiry_id=enquiry.id,
        case_id=enquiry.case_id,
        estimation_date=estimation_date or date.today(),
        total_cost=totals.total_cost,
        total_final_price=totals.grand_total,
        notes=notes,
        created_by=actor_id,
    )
    db.add(estimation)
    db.flush()
    for line in lines or []:
        db.add(
            EstimationItem(
                estimation_id=estimation.id,
                item_name=line.item_name,
                quantity=line.quantity,
                unit=line.unit,
                rate=line.rate,
                cost_rate=line.cost_rate,
                discount_percentage=line.discount_percentage,
                cgst_percentage=line.cgst_percentage,
                sgst_percentage=line.sgst_percentage,
                igst_percentage=line.igst_percentage,
            )
        )
    db.flush()
    record_history(
        db,
        entity_type='estimation',
        entity_id=estimation.id,
        status_label=estimation.status.value,
        note=f'Estimation {estimation.estimation_id} created',
        actor_id=actor_id,
    )
    return estimation


def create_quotation_from_estimation(
    db: Session,
    *,
    estimation_id: int,
    actor_id: int,
    quotation_date: date | None = None,
) -> Quotation:
    estimation = get_document(db, 'estimation', estimation_id)
    if estimation.status != EstimationStatus.APPROVED:
        raise ValidationError(f'Estimation {estimation.estimation_id} must be approved before quoting')

    rows = db.execute(
        select(EstimationItem).where(EstimationItem.estimation_id == estimation.id).order_by(EstimationItem.id.asc())
    ).scalars().all()
    inputs = [line_input_from_row(row) for row in rows]
    totals = compute_document_totals(inputs)
    issued = quotation_date or date.today()

    quotation = Quotation(
        quotation_id=allocate_document_number(db, DocumentType.QUOTATION),
        estimation_id=estimation.id,
        case_id=estimation.case_id,
        quotation_date=issued,
        valid_until=issued + timedelta(days=settings.quotation_validity_days),
        total_amount=totals.total_amount,
        total_tax=totals.total_tax,
        grand_total=totals.grand_total,
        profit_percentage=totals.profit_percentage,
        created_by=actor_id,
    )
    db.add(quotation)
    db.flush()
    for row, line, computed in zip(rows, inputs, totals.lines):
        db.add(
            QuotationItem(
                quotation_id=quotation.id,
                item_name=line.item_name,
                description=row.description,
                hsn_code=row.hsn_code,
                quantity=line.quantity,
                unit=line.unit,
                rate=line.rate,
                cost_rate=line.cost_rate,
                discount_percentage=line.discount_percentage,
                amount=computed.amount,
                cgst_percentage=line.cgst_percentage,
                sgst_percentage=line.sgst_percentage,
                igst_percentage=line.igst_percentage,
            )
        )
    db.flush()
    record_history(
        db,
        entity_type='quotation',
        entity_id=quotation.id,
        status_label=quotation.status.value,
        note=f'Quotation {quotation.quotation_id} created from estimation {estimation.estimation_id}',
        actor_id=actor_id,
    )
    return quotation


def _quotation_lines(db: Session, quotation_id: int) -> list[QuotationItem]:
    return db.execute(
        select(QuotationItem).where(QuotationItem.quotation_id == quotation_id).order_by(QuotationItem.id.asc())
    ).scalars().all()


def create_sales_order_from_quotation(
    db: Session,
    *,
    quotation_id: int,
    actor_id: int,
    order_date: date | None = None,
    customer_po_number: str | None = None,
    advance_amount: Decimal = Decimal('0'),
) -> SalesOrder:
    quotation = _live_quotation(db, quotation_id)
    if quotation.status != QuotationStatus.APPROVED:
        raise ValidationError(f'Quotation {quotation.quotation_id} must be approved before creating a sales order')
    existing = db.execute(
        select(SalesOrder.sales_order_id).where(
            SalesOrder.quotation_id == quotation.id,
            SalesOrder.status != SalesOrderStatus.CANCELLED,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f'Sales order {existing} already exists for quotation {quotation.quotation_id}')
    if advance_amount < 0:
        raise ValidationError('Advance amount cannot be negative')

    rows = _quotation_lines(db, quotation.id)
    inputs = [line_input_from_row(row) for row in rows]
    totals = compute_document_totals(inputs)
    if advance_amount > totals.grand_total:
        raise ValidationError('Advance amount cannot exceed the order total')

    order = SalesOrder(
        sales_order_id=allocate_document_number(db, DocumentType.SALES_ORDER),
        quotation_id=quotation.id,
        case_id=quotation.case_id,
        order_date=order_date or date.today(),
        customer_po_number=customer_po_number,
        total_amount=totals.total_amount,
        total_tax=totals.total_tax,
        grand_total=totals.grand_total,
        advance_amount=advance_amount,
        balance_amount=totals.grand_total - advance_amount,
        payment_terms=quotation.payment_terms,
        delivery_terms=quotation.delivery_terms,
        warranty_terms=quotation.warranty_terms,
        created_by=actor_id,
    )
    db.add(order)
    db.flush()
    for row, line, computed in zip(rows, inputs, totals.lines):
        db.add(
            SalesOrderItem(
                sales_order_id=order.id,
                item_name=line.item_name,
                description=row.description,
                hsn_code=row.hsn_code,
                quantity=line.quantity,
                unit=line.unit,
                rate=line.rate,
                discount_percentage=line.discount_percentage,
                amount=computed.amount,
                cgst_percentage=line.cgst_percentage,
                sgst_percentage=line.sgst_percentage,
                igst_percentage=line.igst_percentage,
            )
        )
    db.flush()
    record_history(
        db,
        entity_type='sales_order',
        entity_id=order.id,
        status_label=order.status.value,
        note=f'Sales order {order.sales_order_id} created from quotation {quotation.quotation_id}',
        actor_id=actor_id,
    )
    return order


def create_bom_from_quotation(db: Session, *, quotation_id: int, actor_id: int, notes: str | None = None) -> BillOfMaterials:
    quotation = _live_quotation(db, quotation_id)
    if quotation.status != QuotationStatus.APPROVED:
        raise ValidationError(f'Quotation {quotation.quotation_id} must be approved before creating a BOM')
    existing = db.execute(
        select(BillOfMaterials.bom_number).where(
            BillOfMaterials.quotation_id == quotation.id,
            BillOfMaterials.status != BomStatus.CANCELLED,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f'BOM {existing} already exists for quotation {quotation.quotation_id}')

    rows = _quotation_lines(db, quotation.id)
    costs = []
    for row in rows:
        # Lines without cost data fall back to the quoted rate.
        unit_cost = Decimal(row.cost_rate or 0) or Decimal(row.rate)
        costs.append(compute_line_totals(LineInput(item_name=row.item_name, quantity=Decimal(row.quantity), rate=unit_cost)).amount)

    bom = BillOfMaterials(
        bom_number=allocate_document_number(db, DocumentType.BILL_OF_MATERIALS),
        quotation_id=quotation.id,
        case_id=quotation.case_id,
        bom_date=date.today(),
        total_estimated_cost=sum(costs, Decimal('0.00')),
        notes=notes,
        created_by=actor_id,
    )
    db.add(bom)
    db.flush()
    for row, cost in zip(rows, costs):
        db.add(BomItem(bom_id=bom.id, item_name=row.item_name, quantity=row.quantity, unit=row.unit, estimated_cost=cost))
    db.flush()
    record_history(
        db,
        entity_type='bom',
        entity_id=bom.id,
        status_label=bom.status.value,
        note=f'BOM {bom.bom_number} created from quotation {quotation.quotation_id}',
        actor_id=actor_id,
    )
    return bom


def create_purchase_requisition_from_bom(
    db: Session,
    *,
    bom_id: int,
    actor_id: int,
    required_by: date | None = None,
    notes: str | None = None,
) -> PurchaseRequisition:
    bom = get_document(db, 'bom', bom_id)
    if bom.status != BomStatus.APPROVED:
        raise ValidationError(f'BOM {bom.bom_number} must be approved before raising a purchase requisition')

    items = db.execute(select(BomItem).where(BomItem.bom_id == bom.id).order_by(BomItem.id.asc())).scalars().all()
    if not items:
        raise ValidationError(f'BOM {bom.bom_number} has no items to requisition')

    requisition = PurchaseRequisition(
        requisition_id=allocate_document_number(db, DocumentType.PURCHASE_REQUISITION),
        bom_id=bom.id,
        case_id=bom.case_id,
        requisition_date=date.today(),
        required_by=required_by,
        total_estimated_cost=sum((Decimal(item.estimated_cost) for item in items), Decimal('0.00')),
        notes=notes,
        created_by=actor_id,
    )
    db.add(requisition)
    db.flush()
    for item in items:
        db.add(
            PurchaseRequisitionItem(
                requisition_id=requisition.id,
                item_name=item.item_name,
                quantity=item.quantity,
                unit=item.unit,
                estimated_cost=item.estimated_cost,
            )
        )
    db.flush()
    record_history(
        db,
        entity_type='purchase_requisition',
        entity_id=requisition.id,
        status_label=requisition.status.value,
        note=f'Purchase requisition {requisition.requisition_id} raised from BOM {bom.bom_number}',
        actor_id=actor_id,
    )
    return requisition


def create_work_order(
    db: Session,
    *,
    sales_order_id: int,
    actor_id: int,
    title: str | None = None,
    description: str | None = None,
    priority: str = 'medium',
    assigned_to: int | None = None,
    planned_start_date: date | None = None,
    planned_end_date: date | None = None,
) -> WorkOrder:
    order = get_document(db, 'sales_order', sales_order_id)
    _check_priority(priority)
    if planned_start_date and planned_end_date and planned_end_date < planned_start_date:
        raise ValidationError('Planned end date cannot be before the planned start date')

    change_status_guarded(
        db,
        entity_type='sales_order',
        entity_id=order.id,
        from_statuses=(SalesOrderStatus.CONFIRMED, SalesOrderStatus.IN_PRODUCTION),
        to_status=SalesOrderStatus.IN_PRODUCTION,
    )
    work_order = WorkOrder(
        work_order_id=allocate_document_number(db, DocumentType.WORK_ORDER),
        sales_order_id=order.id,
        case_id=order.case_id,
        title=title or f'Production for {order.sales_order_id}',
        description=description,
        priority=priority,
        assigned_to=assigned_to,
        planned_start_date=planned_start_date,
        planned_end_date=planned_end_date,
        created_by=actor_id,
    )
    db.add(work_order)
    db.flush()
    record_history(
        db,
        entity_type='work_order',
        entity_id=work_order.id,
        status_label=work_order.status.value,
        note=f'Work order {work_order.work_order_id} created for sales order {order.sales_order_id}',
        actor_id=actor_id,
    )
    return work_order


def create_ticket(
    db: Session,
    *,
    client_id: int,
    title: str,
    actor_id: int,
    description: str | None = None,
    category: str = 'support',
    priority: str = 'medium',
    case_id: int | None = None,
    serial_number: str | None = None,
) -> Ticket:
    if not (title or '').strip():
        raise ValidationError('Ticket title is required')
    if category not in TICKET_CATEGORIES:
        raise invalid_value('category', category, TICKET_CATEGORIES)
    _check_priority(priority)

    ticket = Ticket(
        ticket_number=allocate_document_number(db, DocumentType.TICKET),
        client_id=client_id,
        case_id=case_id,
        title=title.strip(),
        description=description,
        category=category,
        priority=priority,
        serial_number=serial_number,
        created_by=actor_id,
    )
    db.add(ticket)
    db.flush()
    record_history(
        db,
        entity_type='ticket',
        entity_id=ticket.id,
        status_label=ticket.status.value,
        note=f'Ticket {ticket.ticket_number} opened',
        actor_id=actor_id,
    )
    return ticket
