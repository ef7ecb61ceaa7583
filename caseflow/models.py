from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Id = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class CaseState(str, Enum):
    ENQUIRY = 'enquiry'
    ESTIMATION = 'estimation'
    QUOTATION = 'quotation'
    ORDER = 'order'
    PRODUCTION = 'production'
    DELIVERY = 'delivery'
    CLOSED = 'closed'


class CaseStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class EnquiryStatus(str, Enum):
    NEW = 'new'
    ASSIGNED = 'assigned'
    FOR_ESTIMATION = 'for_estimation'
    CLOSED = 'closed'
    CANCELLED = 'cancelled'


class EstimationStatus(str, Enum):
    DRAFT = 'draft'
    SUBMITTED = 'submitted'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CONVERTED_TO_QUOTE = 'converted_to_quote'
    ARCHIVED = 'archived'
    CANCELLED = 'cancelled'


class QuotationStatus(str, Enum):
    DRAFT = 'draft'
    PENDING_APPROVAL = 'pending_approval'
    APPROVED = 'approved'
    SENT = 'sent'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'
    CONVERTED_TO_ORDER = 'converted_to_order'
    ARCHIVED = 'archived'
    CANCELLED = 'cancelled'


class SalesOrderStatus(str, Enum):
    DRAFT = 'draft'
    CONFIRMED = 'confirmed'
    IN_PRODUCTION = 'in_production'
    READY_FOR_DISPATCH = 'ready_for_dispatch'
    DISPATCHED = 'dispatched'
    DELIVERED = 'delivered'
    COMPLETED = 'completed'
    ARCHIVED = 'archived'
    CANCELLED = 'cancelled'


class BomStatus(str, Enum):
    DRAFT = 'draft'
    APPROVED = 'approved'
    LOCKED = 'locked'
    ARCHIVED = 'archived'
    CANCELLED = 'cancelled'


class PurchaseRequisitionStatus(str, Enum):
    DRAFT = 'draft'
    PENDING_APPROVAL = 'pending_approval'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    ORDERED = 'ordered'
    CANCELLED = 'cancelled'


class WorkOrderStatus(str, Enum):
    PLANNED = 'planned'
    IN_PROGRESS = 'in_progress'
    ON_HOLD = 'on_hold'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class TicketStatus(str, Enum):
    OPEN = 'open'
    IN_PROGRESS = 'in_progress'
    ON_HOLD = 'on_hold'
    RESOLVED = 'resolved'
    CLOSED = 'closed'
    CANCELLED = 'cancelled'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default='sales-admin', server_default='sales-admin')
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Client(Base):
    __tablename__ = 'clients'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_person: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DocumentSequence(Base):
    __tablename__ = 'document_sequences'
    __table_args__ = (
        CheckConstraint('last_sequence >= 0', name='document_sequences_non_negative_ck'),
    )

    document_type: Mapped[str] = mapped_column(String(10), primary_key=True)
    financial_year: Mapped[str] = mapped_column(String(4), primary_key=True)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Case(Base):
    __tablename__ = 'cases'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    case_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    client_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('clients.id'))
    project_name: Mapped[str | None] = mapped_column(Text)
    requirements: Mapped[str | None] = mapped_column(Text)
    current_state: Mapped[CaseState] = mapped_column(
        _enum(CaseState, 'case_state'), nullable=False, default=CaseState.ENQUIRY, server_default='enquiry'
    )
    status: Mapped[CaseStatus] = mapped_column(
        _enum(CaseStatus, 'case_status'), nullable=False, default=CaseStatus.ACTIVE, server_default='active'
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class CaseStateTransition(Base):
    __tablename__ = 'case_state_transitions'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    case_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('cases.id'), nullable=False, index=True)
    from_state: Mapped[CaseState | None] = mapped_column(_enum(CaseState, 'case_state'))
    to_state: Mapped[CaseState] = mapped_column(_enum(CaseState, 'case_state'), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50))
    reference_id: Mapped[int | None] = mapped_column(BigInteger)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CaseHistory(Base):
    __tablename__ = 'case_history'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SalesEnquiry(Base):
    __tablename__ = 'sales_enquiries'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    enquiry_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    client_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('clients.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'))
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[EnquiryStatus] = mapped_column(
        _enum(EnquiryStatus, 'enquiry_status'), nullable=False, default=EnquiryStatus.NEW, server_default='new'
    )
    enquiry_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Estimation(Base):
    __tablename__ = 'estimations'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    estimation_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    enquiry_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('sales_enquiries.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    estimation_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[EstimationStatus] = mapped_column(
        _enum(EstimationStatus, 'estimation_status'), nullable=False, default=EstimationStatus.DRAFT, server_default='draft'
    )
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    total_final_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class EstimationItem(Base):
    __tablename__ = 'estimation_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='estimation_items_positive_qty_ck'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    estimation_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('estimations.id', ondelete='CASCADE'), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    hsn_code: Mapped[str | None] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default='nos', server_default='nos')
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cost_rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    cgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    sgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    igst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')


class Quotation(Base):
    __tablename__ = 'quotations'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    quotation_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    estimation_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('estimations.id'))
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    quotation_date: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date | None] = mapped_column(Date)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    total_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    profit_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))
    payment_terms: Mapped[str | None] = mapped_column(Text)
    delivery_terms: Mapped[str | None] = mapped_column(Text)
    warranty_terms: Mapped[str | None] = mapped_column(Text)
    status: Mapped[QuotationStatus] = mapped_column(
        _enum(QuotationStatus, 'quotation_status'), nullable=False, default=QuotationStatus.DRAFT, server_default='draft'
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class QuotationItem(Base):
    __tablename__ = 'quotation_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='quotation_items_positive_qty_ck'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    quotation_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('quotations.id', ondelete='CASCADE'), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    hsn_code: Mapped[str | None] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default='nos', server_default='nos')
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cost_rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    sgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    igst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')


class QuotationStatusHistory(Base):
    __tablename__ = 'quotation_status_history'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    quotation_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('quotations.id'), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(30))
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SalesOrder(Base):
    __tablename__ = 'sales_orders'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    sales_order_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    quotation_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('quotations.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date)
    customer_po_number: Mapped[str | None] = mapped_column(Text)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    total_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    advance_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    balance_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    payment_terms: Mapped[str | None] = mapped_column(Text)
    delivery_terms: Mapped[str | None] = mapped_column(Text)
    warranty_terms: Mapped[str | None] = mapped_column(Text)
    status: Mapped[SalesOrderStatus] = mapped_column(
        _enum(SalesOrderStatus, 'sales_order_status'), nullable=False, default=SalesOrderStatus.DRAFT, server_default='draft'
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SalesOrderItem(Base):
    __tablename__ = 'sales_order_items'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    sales_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('sales_orders.id', ondelete='CASCADE'), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    hsn_code: Mapped[str | None] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    sgst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')
    igst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0'), server_default='0')


class BillOfMaterials(Base):
    __tablename__ = 'bill_of_materials'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    bom_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    quotation_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('quotations.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    bom_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_estimated_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[BomStatus] = mapped_column(
        _enum(BomStatus, 'bom_status'), nullable=False, default=BomStatus.DRAFT, server_default='draft'
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BomItem(Base):
    __tablename__ = 'bom_items'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    bom_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('bill_of_materials.id', ondelete='CASCADE'), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)


class PurchaseRequisition(Base):
    __tablename__ = 'purchase_requisitions'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    requisition_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    bom_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('bill_of_materials.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    requisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    required_by: Mapped[date | None] = mapped_column(Date)
    total_estimated_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[PurchaseRequisitionStatus] = mapped_column(
        _enum(PurchaseRequisitionStatus, 'purchase_requisition_status'),
        nullable=False,
        default=PurchaseRequisitionStatus.DRAFT,
        server_default='draft',
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PurchaseRequisitionItem(Base):
    __tablename__ = 'purchase_requisition_items'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    requisition_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('purchase_requisitions.id', ondelete='CASCADE'), nullable=False
    )
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)


class WorkOrder(Base):
    __tablename__ = 'work_orders'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    work_order_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    sales_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('sales_orders.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'), index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default='medium', server_default='medium')
    assigned_to: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    planned_start_date: Mapped[date | None] = mapped_column(Date)
    planned_end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[WorkOrderStatus] = mapped_column(
        _enum(WorkOrderStatus, 'work_order_status'), nullable=False, default=WorkOrderStatus.PLANNED, server_default='planned'
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Ticket(Base):
    __tablename__ = 'tickets'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    client_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('clients.id'), nullable=False)
    case_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('cases.id'))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(30), nullable=False, default='support', server_default='support')
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default='medium', server_default='medium')
    serial_number: Mapped[str | None] = mapped_column(Text)
    status: Mapped[TicketStatus] = mapped_column(
        _enum(TicketStatus, 'ticket_status'), nullable=False, default=TicketStatus.OPEN, server_default='open'
    )
    created_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
