from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from caseflow.errors import ConflictError, NotFoundError, ValidationError
from caseflow.models import (
    BomStatus,
    CaseHistory,
    Quotation,
    QuotationStatus,
    QuotationStatusHistory,
)
from caseflow.services.case_workflow_service import approve_quotation, unit_of_work
from caseflow.services.document_status_service import (
    ENTITY_STATUSES,
    approve_document,
    reject_document,
    submit_for_approval,
    update_document_status,
    validate_status,
)
from caseflow.services.history_service import list_history
from tests.support import DatabaseTestCase


class ValidateStatusTests(unittest.TestCase):
    def test_accepts_allow_listed_status(self) -> None:
        self.assertEqual(validate_status('quotation', 'pending_approval'), QuotationStatus.PENDING_APPROVAL)

    def test_message_names_value_and_permitted_set(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_status('quotation', 'lost')
        message = str(ctx.exception)
        self.assertIn("Invalid quotation status 'lost'", message)
        self.assertIn(', '.join(ENTITY_STATUSES['quotation']), message)

    def test_unknown_entity_type(self) -> None:
        with self.assertRaises(ValidationError):
            validate_status('invoice', 'draft')

    def test_sales_order_allow_list(self) -> None:
        self.assertEqual(
            ENTITY_STATUSES['sales_order'],
            [
                'draft',
                'confirmed',
                'in_production',
                'ready_for_dispatch',
                'dispatched',
                'delivered',
                'completed',
                'archived',
                'cancelled',
            ],
        )


class DocumentStatusServiceTests(DatabaseTestCase):
    def _quotation(self, *, profit: str | None = '25.00', status: QuotationStatus = QuotationStatus.DRAFT) -> int:
        with unit_of_work(self.db):
            quotation = Quotation(
                quotation_id='VESPL/Q/2526/500',
                quotation_date=date(2025, 7, 1),
                profit_percentage=Decimal(profit) if profit is not None else None,
                status=status,
                created_by=self.actor.id,
            )
            self.db.add(quotation)
            self.db.flush()
        return quotation.id

    def _statuses(self, entity_type: str, entity_id: int) -> list[str]:
        return [row.status for row in list_history(self.db, entity_type=entity_type, entity_id=entity_id)]

    def test_update_records_history_and_status_log(self) -> None:
        quotation_id = self._quotation()
        with unit_of_work(self.db):
            old, new = update_document_status(
                self.db, entity_type='quotation', entity_id=quotation_id, status='sent', actor_id=self.actor.id
            )

        self.assertEqual((old, new), ('draft', 'sent'))
        self.assertEqual(self.db.get(Quotation, quotation_id).status, QuotationStatus.SENT)
        self.assertEqual(self._statuses('quotation', quotation_id), ['sent'])
        log = self.db.execute(select(QuotationStatusHistory)).scalars().all()
        self.assertEqual([(row.old_status, row.new_status) for row in log], [('draft', 'sent')])

    def test_status_log_failure_does_not_block_update(self) -> None:
        quotation_id = self._quotation()
        self.db.close()
        QuotationStatusHistory.__table__.drop(self.engine)

        with self.assertLogs('caseflow.services.document_status_service', level='WARNING') as logs:
            with unit_of_work(self.db):
                update_document_status(
                    self.db, entity_type='quotation', entity_id=quotation_id, status='sent', actor_id=self.actor.id
                )

        self.assertTrue(any('history skipped' in line for line in logs.output))
        fresh = self.Session()
        try:
            self.assertEqual(fresh.get(Quotation, quotation_id).status, QuotationStatus.SENT)
            history = fresh.execute(
                select(CaseHistory).where(CaseHistory.reference_type == 'quotation', CaseHistory.reference_id == quotation_id)
            ).scalars().all()
            self.assertEqual([row.status for row in history], ['sent'])
        finally:
            fresh.close()

    def test_orchestrated_status_cannot_be_set_directly(self) -> None:
        quotation_id = self._quotation()
        for status in ('approved', 'rejected'):
            with self.assertRaises(ValidationError):
                update_document_status(
                    self.db, entity_type='quotation', entity_id=quotation_id, status=status, actor_id=self.actor.id
                )
        self.assertEqual(self.db.get(Quotation, quotation_id).status, QuotationStatus.DRAFT)

    def test_invalid_status_is_rejected_without_changes(self) -> None:
        quotation_id = self._quotation()
        with self.assertRaises(ValidationError):
            update_document_status(
                self.db, entity_type='quotation', entity_id=quotation_id, status='won', actor_id=self.actor.id
            )
        self.assertEqual(self.db.get(Quotation, quotation_id).status, QuotationStatus.DRAFT)

    def test_same_status_is_a_conflict(self) -> None:
        quotation_id = self._quotation()
        with self.assertRaises(ConflictError):
            update_document_status(
                self.db, entity_type='quotation', entity_id=quotation_id, status='draft', actor_id=self.actor.id
            )

    def test_missing_document(self) -> None:
        with self.assertRaises(NotFoundError):
            update_document_status(self.db, entity_type='quotation', entity_id=404, status='sent', actor_id=self.actor.id)

    def test_low_profit_submission_adds_warning(self) -> None:
        quotation_id = self._quotation(profit='4.50')
        with unit_of_work(self.db):
            status = submit_for_approval(self.db, entity_type='quotation', entity_id=quotation_id, actor_id=self.actor.id)

        self.assertEqual(status, QuotationStatus.PENDING_APPROVAL)
        self.assertEqual(self._statuses('quotation', quotation_id), ['warning', 'pending_approval'])

    def test_healthy_profit_submission_has_no_warning(self) -> None:
        quotation_id = self._quotation(profit='18.00')
        with unit_of_work(self.db):
            submit_for_approval(self.db, entity_type='quotation', entity_id=quotation_id, actor_id=self.actor.id)
        self.assertEqual(self._statuses('quotation', quotation_id), ['pending_approval'])

    def test_submit_requires_draft(self) -> None:
        quotation_id = self._quotation(status=QuotationStatus.SENT)
        with self.assertRaises(ConflictError):
            submit_for_approval(self.db, entity_type='quotation', entity_id=quotation_id, actor_id=self.actor.id)

    def test_reject_returns_document_to_draft(self) -> None:
        quotation_id = self._quotation(status=QuotationStatus.PENDING_APPROVAL)
        with unit_of_work(self.db):
            status = reject_document(
                self.db, entity_type='quotation', entity_id=quotation_id, actor_id=self.actor.id, note='Margins too thin'
            )
        self.assertEqual(status, QuotationStatus.DRAFT)
        history = list_history(self.db, entity_type='quotation', entity_id=quotation_id)
        self.assertEqual([(row.status, row.notes) for row in history], [('rejected', 'Margins too thin')])

    def test_bom_direct_approval(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        result = approve_quotation(self.db, quotation_id=quotation_id, actor_id=self.actor.id)
        bom_id = next(c.entity_id for c in result.child_documents if c.entity_type == 'bom')

        with unit_of_work(self.db):
            status = approve_document(self.db, entity_type='bom', entity_id=bom_id, actor_id=self.actor.id)
        self.assertEqual(status, BomStatus.APPROVED)

        with self.assertRaises(ConflictError):
            approve_document(self.db, entity_type='bom', entity_id=bom_id, actor_id=self.actor.id)
        with self.assertRaises(ValidationError):
            approve_document(self.db, entity_type='quotation', entity_id=quotation_id, actor_id=self.actor.id)


if __name__ == '__main__':
    unittest.main()
