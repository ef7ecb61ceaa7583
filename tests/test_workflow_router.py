from __future__ import annotations

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from caseflow.db import get_db
from caseflow.errors import AllocationError
from caseflow.main import app
from caseflow.models import Case, SalesEnquiry
from tests.support import DatabaseTestCase


class WorkflowRouterTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.http = TestClient(app)
        self.headers = {'X-Actor-Id': str(self.actor.id)}

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    def test_financial_year_lookup(self) -> None:
        response = self.http.get('/workflow/financial-year', params={'reference_date': '2025-03-31'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['financial_year'], '2425')

    def test_issue_document_number(self) -> None:
        response = self.http.post(
            '/workflow/document-numbers',
            json={'document_type': 'PO', 'financial_year': '2526'},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['identifier'], 'VESPL/PO/2526/001')

    def test_missing_actor_header_is_a_validation_error(self) -> None:
        response = self.http.post('/workflow/document-numbers', json={'document_type': 'PO'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {
            'success': False,
            'error': {'kind': 'validation_error', 'message': 'X-Actor-Id header is required'},
        })

    def test_case_flow_over_http(self) -> None:
        created = self.http.post(
            '/workflow/enquiries',
            json={'client_id': self.client.id, 'project_name': 'Conveyor controls'},
            headers=self.headers,
        )
        self.assertEqual(created.status_code, 200)
        body = created.json()
        case_id = body['case']['id']
        self.assertEqual(body['case']['current_state'], 'enquiry')

        moved = self.http.post(
            f'/workflow/cases/{case_id}/transitions',
            json={'entity_type': 'sales_enquiry', 'entity_id': body['enquiry']['id'], 'target_state': 'estimation'},
            headers=self.headers,
        )
        self.assertEqual(moved.status_code, 200)
        data = moved.json()['data']
        self.assertEqual((data['from_state'], data['new_state']), ('enquiry', 'estimation'))
        self.assertEqual(data['child_documents'][0]['entity_type'], 'estimation')

        invalid = self.http.post(
            f'/workflow/cases/{case_id}/transitions',
            json={'entity_type': 'sales_enquiry', 'entity_id': body['enquiry']['id'], 'target_state': 'delivery'},
            headers=self.headers,
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.json()['error']['kind'], 'validation_error')

        stale = self.http.post(
            f'/workflow/cases/{case_id}/transitions',
            json={
                'entity_type': 'case',
                'entity_id': case_id,
                'target_state': 'enquiry',
                'expected_state': 'quotation',
            },
            headers=self.headers,
        )
        self.assertEqual(stale.status_code, 409)

        timeline = self.http.get(f'/workflow/cases/{case_id}/timeline')
        self.assertEqual(timeline.status_code, 200)
        payload = timeline.json()['data']
        self.assertEqual(payload['current_state'], 'estimation')
        self.assertEqual([row['to_state'] for row in payload['transitions']], ['enquiry', 'estimation'])
        self.assertEqual(set(payload['allowed_transitions']), {'quotation', 'enquiry'})

    def test_enquiry_is_not_saved_when_its_case_cannot_be_opened(self) -> None:
        with patch(
            'caseflow.services.document_service.create_case',
            side_effect=AllocationError('sequence unavailable'),
        ):
            response = self.http.post(
                '/workflow/enquiries',
                json={'client_id': self.client.id, 'project_name': 'Conveyor controls'},
                headers=self.headers,
            )

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()['error']['kind'], 'allocation_error')
        self.assertEqual(self.db.execute(select(func.count()).select_from(SalesEnquiry)).scalar_one(), 0)
        self.assertEqual(self.db.execute(select(func.count()).select_from(Case)).scalar_one(), 0)

    def test_quotation_approval_twice_returns_conflict(self) -> None:
        _case, quotation_id = self.case_at_quotation()
        self.db.close()

        first = self.http.post(f'/workflow/quotations/{quotation_id}/approve', headers=self.headers)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()['data']['new_state'], 'order')

        second = self.http.post(f'/workflow/quotations/{quotation_id}/approve', headers=self.headers)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()['error']['kind'], 'conflict_error')

    def test_status_patch_and_cancel(self) -> None:
        case, quotation_id = self.case_at_quotation()
        self.db.close()

        bad = self.http.patch(
            f'/workflow/documents/quotation/{quotation_id}/status', json={'status': 'won'}, headers=self.headers
        )
        self.assertEqual(bad.status_code, 400)
        self.assertIn("Invalid quotation status 'won'", bad.json()['error']['message'])

        sent = self.http.patch(
            f'/workflow/documents/quotation/{quotation_id}/status', json={'status': 'sent'}, headers=self.headers
        )
        self.assertEqual(sent.json()['data'], {'old_status': 'draft', 'new_status': 'sent'})

        cancelled = self.http.post(f'/workflow/cases/{case.id}/cancel', json={'reason': 'Lost to competitor'}, headers=self.headers)
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()['data']['new_state'], 'closed')

        again = self.http.post(f'/workflow/cases/{case.id}/cancel', json={'reason': 'again'}, headers=self.headers)
        self.assertEqual(again.status_code, 409)

    def test_unknown_case_timeline_is_not_found(self) -> None:
        response = self.http.get('/workflow/cases/4242/timeline')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error']['kind'], 'not_found')


if __name__ == '__main__':
    unittest.main()
