from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from caseflow.errors import ValidationError

CENT = Decimal('0.01')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class LineInput:
    item_name: str
    quantity: Decimal
    rate: Decimal
    unit: str = 'nos'
    discount_percentage: Decimal = Decimal('0')
    cost_rate: Decimal = Decimal('0')
    cgst_percentage: Decimal = Decimal('0')
    sgst_percentage: Decimal = Decimal('0')
    igst_percentage: Decimal = Decimal('0')


@dataclass(frozen=True)
class LineTotals:
    item_name: str
    amount: Decimal
    tax: Decimal
    cost: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    lines: list[LineTotals]
    total_amount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    total_cost: Decimal
    profit_percentage: Decimal | None


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _validate_line(line: LineInput) -> None:
    if line.quantity <= 0:
        raise ValidationError(f'Quantity for {line.item_name} must be greater than zero')
    if line.rate < 0 or line.cost_rate < 0:
        raise ValidationError(f'Rates for {line.item_name} cannot be negative')
    if line.discount_percentage < 0 or line.discount_percentage > HUNDRED:
        raise ValidationError(f'Discount for {line.item_name} must be between 0 and 100')
    for pct in (line.cgst_percentage, line.sgst_percentage, line.igst_percentage):
        if pct < 0:
            raise ValidationError(f'Tax rates for {line.item_name} cannot be negative')


def compute_line_totals(line: LineInput) -> LineTotals:
    _validate_line(line)
    gross = line.quantity * line.rate
    amount = _money(gross * (HUNDRED - line.discount_percentage) / HUNDRED)
    tax_pct = line.cgst_percentage + line.sgst_percentage + line.igst_percentage
    tax = _money(amount * tax_pct / HUNDRED)
    cost = _money(line.quantity * line.cost_rate)
    return LineTotals(item_name=line.item_name, amount=amount, tax=tax, cost=cost)


def compute_document_totals(lines: list[LineInput]) -> DocumentTotals:
    computed = [compute_line_totals(line) for line in lines]
    total_amount = sum((row.amount for row in computed), Decimal('0.00'))
    total_tax = sum((row.tax for row in computed), Decimal('0.00'))
    total_cost = sum((row.cost for row in computed), Decimal('0.00'))

    profit_percentage: Decimal | None = None
    # Without cost data there is no meaningful margin to report.
    if total_amount > 0 and total_cost > 0:
        profit_percentage = _money((total_amount - total_cost) / total_amount * HUNDRED)

    return DocumentTotals(
        lines=computed,
        total_amount=_money(total_amount),
        total_tax=_money(total_tax),
        grand_total=_money(total_amount + total_tax),
        total_cost=_money(total_cost),
        profit_percentage=profit_percentage,
    )


def line_input_from_row(row) -> LineInput:
    """Build a LineInput from any persisted line row carrying the usual columns."""
    return LineInput(
        item_name=row.item_name,
        quantity=Decimal(row.quantity),
        rate=Decimal(row.rate),
        unit=row.unit,
        discount_percentage=Decimal(getattr(row, 'discount_percentage', None) or 0),
        cost_rate=Decimal(getattr(row, 'cost_rate', None) or 0),
        cgst_percentage=Decimal(getattr(row, 'cgst_percentage', None) or 0),
        sgst_percentage=Decimal(getattr(row, 'sgst_percentage', None) or 0),
        igst_percentage=Decimal(getattr(row, 'igst_percentage', None) or 0),
    )
