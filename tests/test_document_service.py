from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from caseflow.errors import ConflictError, ValidationError
from caseflow.models import (
    BomItem,
    Case,
    CaseState,
    CaseStateTransition,
    EstimationItem,
    EstimationStatus,
    PurchaseRequisitionItem,
    PurchaseRequisitionStatus,
    Quotation,
    QuotationItem,
    TicketStatus,
)
from caseflow.services.case_workflow_service import approve_quotation, unit_of_work
from caseflow.services.document_number_service import current_financial_year
from caseflow.services.document_service import (
    create_bom_from_quotation,
    create_estimation,
    create_purchase_requisition_from_bom,
    create_quotation_from_estimation,
    create_sales_order_from_quotation,
    create_ticket,
    create_work_order,
)
from caseflow.services.document_status_service import approve_document
from tests.support import PANEL_LINES, DatabaseTestCase


class DocumentServiceTests(DatabaseTestCase):
    def test_enquiry_gets_eq_number(self) -> None:
        enquiry = self.new_enquiry()
        year = current_financial_year(date.today())
        self.assertEqual(enquiry.enquiry_id, f'VESPL/EQ/{year}/001')

    def test_estimation_opens_case_at_estimation(self) -> None:
        enquiry = self.new_enquiry()
        with unit_of_work(self.db):
            estimation = create_estimation(self.db, enquiry_id=enquiry.id, actor_id=self.actor.id, lines=PANEL_LINES)

        case = self.db.get(Case, estimation.case_id)
        self.assertEqual(case.current_state, CaseState.ESTIMATION)
        self.assertTrue(case.case_number.startswith('VESPL/C/'))
        first = self.db.execute(select(CaseStateTransition).where(CaseStateTransition.case_id == case.id)).scalar_one()
        self.assertIsNone(first.from_state)
        self.assertEqual(first.to_state, CaseState.ESTIMATION)

        self.assertEqual(estimation.total_cost, Decimal('110.00'))
        self.assertEqual(estimation.total_final_price, Decimal('252.40'))
        items = self.db.execute(select(EstimationItem).where(EstimationItem.estimation_id == estimation.id)).scalars().all()
        self.assertEqual([item.item_name for item in items], ['PLC control panel', 'Installation'])

    def test_quotation_requires_approved_estimation(self) -> None:
        _case, _enquiry, estimation = self.case_at_estimation()
        self.assertEqual(estimation.status, EstimationStatus.DRAFT)
        with self.assertRaises(ValidationError):
            create_quotation_from_estimation(self.db, estimation_id=estimation.id, actor_id=self.actor.id)

    def test_quotation_totals_recomputed_from_lines(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        quotation = self.db.get(Quotation, quotation_id)

        self.assertEqual(quotation.total_amount, Decimal('220.00'))
        self.assertEqual(quotation.total_tax, Decimal('32.40'))
        self.assertEqual(quotation.grand_total, Decimal('252.40'))
        self.assertEqual(quotation.profit_percentage, Decimal('50.00'))
        self.assertEqual((quotation.valid_until - quotation.quotation_date).days, 30)
        amounts = self.db.execute(
            select(QuotationItem.amount).where(QuotationItem.quotation_id == quotation_id).order_by(QuotationItem.id)
        ).scalars().all()
        self.assertEqual(amounts, [Decimal('180.00'), Decimal('40.00')])

    def test_sales_order_and_bom_need_approved_quotation(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        with self.assertRaises(ValidationError):
            create_sales_order_from_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        with self.assertRaises(ValidationError):
            create_bom_from_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)

    def test_second_sales_order_for_quotation_is_a_conflict(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        approve_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        with self.assertRaises(ConflictError):
            create_sales_order_from_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        with self.assertRaises(ConflictError):
            create_bom_from_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)

    def test_bom_costs_and_purchase_requisition(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        result = approve_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        bom_id = next(c.entity_id for c in result.child_documents if c.entity_type == 'bom')

        costs = self.db.execute(select(BomItem.estimated_cost).where(BomItem.bom_id == bom_id).order_by(BomItem.id)).scalars().all()
        self.assertEqual(costs, [Decimal('100.00'), Decimal('10.00')])

        with self.assertRaises(ValidationError):
            create_purchase_requisition_from_bom(self.db, bom_id=bom_id, actor_id=self.actor.id)
        self.db.rollback()

        with unit_of_work(self.db):
            approve_document(self.db, entity_type='bom', entity_id=bom_id, actor_id=self.actor.id)
            requisition = create_purchase_requisition_from_bom(self.db, bom_id=bom_id, actor_id=self.actor.id)

        self.assertEqual(requisition.status, PurchaseRequisitionStatus.DRAFT)
        self.assertEqual(requisition.total_estimated_cost, Decimal('110.00'))
        self.assertIn('/PR/', requisition.requisition_id)
        lines = self.db.execute(
            select(PurchaseRequisitionItem).where(PurchaseRequisitionItem.requisition_id == requisition.id)
        ).scalars().all()
        self.assertEqual(len(lines), 2)

    def test_work_order_requires_confirmed_sales_order(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        result = approve_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        order_id = next(c.entity_id for c in result.child_documents if c.entity_type == 'sales_order')
        with self.assertRaises(ConflictError):
            create_work_order(self.db, sales_order_id=order_id, actor_id=self.actor.id)

    def test_ticket_numbering_and_validation(self) -> None:
        with unit_of_work(self.db):
            ticket = create_ticket(
                self.db,
                client_id=self.client.id,
                title='Panel fan noisy',
                actor_id=self.actor.id,
                category='warranty',
                priority='high',
            )
        self.assertEqual(ticket.status, TicketStatus.OPEN)
        self.assertIn('/TK/', ticket.ticket_number)

        with self.assertRaises(ValidationError):
            create_ticket(self.db, client_id=self.client.id, title='x', actor_id=self.actor.id, priority='asap')
        with self.assertRaises(ValidationError):
            create_ticket(self.db, client_id=self.client.id, title='  ', actor_id=self.actor.id)


if __name__ == '__main__':
    unittest.main()
