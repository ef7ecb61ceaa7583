from __future__ import annotations

import tempfile
import unittest
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from caseflow.db import build_engine
from caseflow.models import Base, CaseState, Client, User
from caseflow.services.case_workflow_service import open_case, transition_case, unit_of_work
from caseflow.services.document_math_service import LineInput
from caseflow.services.document_service import create_enquiry, create_estimation

PANEL_LINES = [
    LineInput(
        item_name='PLC control panel',
        quantity=Decimal('2'),
        rate=Decimal('100.00'),
        discount_percentage=Decimal('10'),
        cost_rate=Decimal('50.00'),
        cgst_percentage=Decimal('9'),
        sgst_percentage=Decimal('9'),
    ),
    LineInput(
        item_name='Installation',
        quantity=Decimal('1'),
        rate=Decimal('40.00'),
        unit='job',
        cost_rate=Decimal('10.00'),
    ),
]


class DatabaseTestCase(unittest.TestCase):
    """File-backed SQLite per test so separate sessions see each other's commits."""

    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = build_engine(f'sqlite:///{self._tmpdir.name}/caseflow.db')
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db = self.Session()
        with unit_of_work(self.db):
            self.actor = User(username='sales-admin', full_name='Sales Admin', role='sales-admin', active=True)
            self.client = Client(company_name='Acme Fabricators', contact_person='Ravi')
            self.db.add_all([self.actor, self.client])
            self.db.flush()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()
        self._tmpdir.cleanup()

    def new_enquiry(self, project_name: str = 'Panel retrofit'):
        with unit_of_work(self.db):
            return create_enquiry(
                self.db, client_id=self.client.id, project_name=project_name, actor_id=self.actor.id
            )

    def case_at_estimation(self):
        enquiry = self.new_enquiry()
        case = open_case(self.db, enquiry_id=enquiry.id, actor_id=self.actor.id)
        with unit_of_work(self.db):
            estimation = create_estimation(
                self.db, enquiry_id=enquiry.id, actor_id=self.actor.id, lines=PANEL_LINES
            )
        transition_case(
            self.db,
            case_id=case.id,
            entity_type='sales_enquiry',
            entity_id=enquiry.id,
            target_state=CaseState.ESTIMATION,
            actor_id=self.actor.id,
        )
        return case, enquiry, estimation

    def case_at_quotation(self):
        """Returns (case, quotation_id) with the quotation still in draft."""
        case, _enquiry, estimation = self.case_at_estimation()
        result = transition_case(
            self.db,
            case_id=case.id,
            entity_type='estimation',
            entity_id=estimation.id,
            target_state=CaseState.QUOTATION,
            actor_id=self.actor.id,
        )
        quotation_id = next(c.entity_id for c in result.child_documents if c.entity_type == 'quotation')
        return case, quotation_id
