from __future__ import annotations

import logging
import re
from datetime import date
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caseflow.config import settings
from caseflow.errors import AllocationError, ValidationError
from caseflow.models import DocumentSequence

logger = logging.getLogger(__name__)

_TYPE_CODE_RE = re.compile(r'^[A-Z0-9]{1,10}$')
_YEAR_CODE_RE = re.compile(r'^\d{4}$')


class DocumentType(str, Enum):
    CASE = 'C'
    ENQUIRY = 'EQ'
    ESTIMATION = 'ES'
    QUOTATION = 'Q'
    SALES_ORDER = 'SO'
    BILL_OF_MATERIALS = 'BOM'
    PURCHASE_REQUISITION = 'PR'
    PURCHASE_ORDER = 'PO'
    WORK_ORDER = 'WO'
    TICKET = 'TK'


def current_financial_year(reference_date: date, *, start_month: int | None = None) -> str:
    """
    Return the compact financial-year code for reference_date, e.g. "2526" for 2025-26.
    Dates before the start month belong to the year that began in the previous calendar year.
    """
    boundary = settings.fiscal_year_start_month if start_month is None else start_month
    if boundary < 1 or boundary > 12:
        raise ValidationError('Financial year start month must be between 1 and 12')
    start_year = reference_date.year if reference_date.month >= boundary else reference_date.year - 1
    end_year = start_year + 1
    return f'{start_year % 100:02d}{end_year % 100:02d}'


def format_document_number(
    document_type: str,
    financial_year: str,
    counter: int,
    *,
    prefix: str | None = None,
    width: int | None = None,
) -> str:
    # Width is a minimum; counters past 999 widen instead of wrapping.
    padding = settings.document_counter_width if width is None else width
    return f'{prefix or settings.org_prefix}/{document_type}/{financial_year}/{counter:0{padding}d}'


def _normalize_type(document_type: DocumentType | str) -> str:
    code = document_type.value if isinstance(document_type, DocumentType) else str(document_type or '').strip()
    if not _TYPE_CODE_RE.match(code):
        raise ValidationError(f"Invalid document type '{document_type}'. Use 1-10 uppercase letters or digits")
    return code


def _upsert_increment(db: Session, document_type: str, financial_year: str):
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        insert = postgresql.insert
    elif dialect == 'sqlite':
        insert = sqlite.insert
    else:
        raise AllocationError(f'Document numbering is not supported on {dialect}')

    stmt = insert(DocumentSequence).values(
        document_type=document_type,
        financial_year=financial_year,
        last_sequence=1,
    )
    return stmt.on_conflict_do_update(
        index_elements=[DocumentSequence.document_type, DocumentSequence.financial_year],
        set_={'last_sequence': DocumentSequence.last_sequence + 1, 'updated_at': func.now()},
    )


def next_sequence_value(db: Session, document_type: DocumentType | str, financial_year: str) -> int:
    """
    Increment and return the counter for (document_type, financial_year) inside the caller's transaction.

    The upsert takes the row lock, so concurrent callers serialize until this transaction ends and a
    rolled-back caller gives its value back.
    """
    code = _normalize_type(document_type)
    if not _YEAR_CODE_RE.match(financial_year or ''):
        raise ValidationError(f"Invalid financial year '{financial_year}'. Expected a 4 digit code like 2526")

    try:
        db.execute(_upsert_increment(db, code, financial_year))
        value = db.execute(
            select(DocumentSequence.last_sequence).where(
                DocumentSequence.document_type == code,
                DocumentSequence.financial_year == financial_year,
            )
        ).scalar_one()
    except SQLAlchemyError as exc:
        logger.error('Sequence increment failed for %s/%s: %s', code, financial_year, exc)
        raise AllocationError(f'Could not allocate a {code} number for {financial_year}') from exc
    return int(value)


def allocate_document_number(
    db: Session,
    document_type: DocumentType | str,
    financial_year: str | None = None,
    *,
    reference_date: date | None = None,
) -> str:
    year = financial_year or current_financial_year(reference_date or date.today())
    code = _normalize_type(document_type)
    counter = next_sequence_value(db, code, year)
    identifier = format_document_number(code, year, counter)
    logger.info('Allocated document number %s', identifier)
    return identifier


def peek_last_sequence(db: Session, document_type: DocumentType | str, financial_year: str) -> int:
    code = _normalize_type(document_type)
    value = db.execute(
        select(DocumentSequence.last_sequence).where(
            DocumentSequence.document_type == code,
            DocumentSequence.financial_year == financial_year,
        )
    ).scalar_one_or_none()
    return int(value or 0)
