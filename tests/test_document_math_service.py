from __future__ import annotations

import unittest
from decimal import Decimal
from types import SimpleNamespace

from caseflow.errors import ValidationError
from caseflow.services.document_math_service import (
    LineInput,
    compute_document_totals,
    compute_line_totals,
    line_input_from_row,
)


class DocumentMathServiceTests(unittest.TestCase):
    def test_line_applies_discount_then_tax(self) -> None:
        line = LineInput(
            item_name='Panel',
            quantity=Decimal('2'),
            rate=Decimal('100.00'),
            discount_percentage=Decimal('10'),
            cgst_percentage=Decimal('9'),
            sgst_percentage=Decimal('9'),
        )
        result = compute_line_totals(line)
        self.assertEqual(result.amount, Decimal('180.00'))
        self.assertEqual(result.tax, Decimal('32.40'))

    def test_rounds_half_up_to_cents(self) -> None:
        line = LineInput(item_name='Cable', quantity=Decimal('3'), rate=Decimal('0.335'))
        self.assertEqual(compute_line_totals(line).amount, Decimal('1.01'))

    def test_document_totals_and_profit(self) -> None:
        totals = compute_document_totals(
            [
                LineInput(item_name='Panel', quantity=Decimal('2'), rate=Decimal('100'), cost_rate=Decimal('60')),
                LineInput(item_name='Service', quantity=Decimal('1'), rate=Decimal('50'), igst_percentage=Decimal('18')),
            ]
        )
        self.assertEqual(totals.total_amount, Decimal('250.00'))
        self.assertEqual(totals.total_tax, Decimal('9.00'))
        self.assertEqual(totals.grand_total, Decimal('259.00'))
        self.assertEqual(totals.total_cost, Decimal('120.00'))
        self.assertEqual(totals.profit_percentage, Decimal('52.00'))

    def test_profit_is_unknown_without_cost(self) -> None:
        totals = compute_document_totals([LineInput(item_name='Panel', quantity=Decimal('1'), rate=Decimal('10'))])
        self.assertIsNone(totals.profit_percentage)

    def test_empty_document_is_zero(self) -> None:
        totals = compute_document_totals([])
        self.assertEqual(totals.grand_total, Decimal('0.00'))
        self.assertEqual(totals.lines, [])

    def test_rejects_bad_lines(self) -> None:
        with self.assertRaises(ValidationError):
            compute_line_totals(LineInput(item_name='Panel', quantity=Decimal('0'), rate=Decimal('1')))
        with self.assertRaises(ValidationError):
            compute_line_totals(
                LineInput(item_name='Panel', quantity=Decimal('1'), rate=Decimal('1'), discount_percentage=Decimal('101'))
            )
        with self.assertRaises(ValidationError):
            compute_line_totals(LineInput(item_name='Panel', quantity=Decimal('1'), rate=Decimal('-1')))

    def test_line_input_from_row_defaults_missing_columns(self) -> None:
        row = SimpleNamespace(item_name='Bolt', quantity=Decimal('4'), rate=Decimal('2.50'), unit='nos', discount_percentage=None)
        line = line_input_from_row(row)
        self.assertEqual(line.discount_percentage, Decimal('0'))
        self.assertEqual(line.cost_rate, Decimal('0'))
        self.assertEqual(compute_line_totals(line).amount, Decimal('10.00'))


if __name__ == '__main__':
    unittest.main()
