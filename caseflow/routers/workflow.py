from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from caseflow.db import get_db
from caseflow.dependencies import get_actor_id
from caseflow.errors import NotFoundError
from caseflow.models import Case
from caseflow.services import document_service
from caseflow.services.case_workflow_service import (
    allowed_transitions,
    approve_quotation,
    cancel_case,
    transition_case,
    unit_of_work,
)
from caseflow.services.document_number_service import allocate_document_number, current_financial_year
from caseflow.services.document_service import create_enquiry
from caseflow.services.document_status_service import submit_for_approval, update_document_status
from caseflow.services.history_service import case_timeline, list_history

router = APIRouter(prefix='/workflow', tags=['workflow'])


class DocumentNumberRequest(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=10)
    financial_year: Optional[str] = None
    reference_date: Optional[date] = None


class EnquiryCreateRequest(BaseModel):
    client_id: int
    project_name: str = Field(..., min_length=1)
    description: Optional[str] = None
    open_case: bool = True


class TransitionRequest(BaseModel):
    entity_type: str
    entity_id: int
    target_state: str
    notes: Optional[str] = None
    expected_state: Optional[str] = None


class ApprovalRequest(BaseModel):
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str
    note: Optional[str] = None


@router.post('/document-numbers')
def issue_document_number(
    payload: DocumentNumberRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    with unit_of_work(db):
        identifier = allocate_document_number(
            db,
            payload.document_type,
            payload.financial_year,
            reference_date=payload.reference_date,
        )
    return {'success': True, 'identifier': identifier}


@router.get('/financial-year')
def financial_year(reference_date: Optional[date] = Query(default=None)):
    return {'success': True, 'financial_year': current_financial_year(reference_date or date.today())}


@router.post('/enquiries')
def new_enquiry(
    payload: EnquiryCreateRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    with unit_of_work(db):
        enquiry = create_enquiry(
            db,
            client_id=payload.client_id,
            project_name=payload.project_name,
            description=payload.description,
            actor_id=actor_id,
        )
        case = document_service.create_case(db, enquiry=enquiry, actor_id=actor_id) if payload.open_case else None
    return {
        'success': True,
        'enquiry': {'id': enquiry.id, 'enquiry_id': enquiry.enquiry_id, 'status': enquiry.status.value},
        'case': None if case is None else {
            'id': case.id,
            'case_number': case.case_number,
            'current_state': case.current_state.value,
        },
    }


@router.post('/cases/{case_id}/transitions')
def move_case(
    case_id: int,
    payload: TransitionRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    result = transition_case(
        db,
        case_id=case_id,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        target_state=payload.target_state,
        actor_id=actor_id,
        notes=payload.notes,
        expected_state=payload.expected_state,
    )
    return {'success': True, 'data': result.to_dict()}


@router.post('/quotations/{quotation_id}/approve')
def approve(
    quotation_id: int,
    payload: Optional[ApprovalRequest] = None,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    result = approve_quotation(
        db, quotation_id=quotation_id, actor_id=actor_id, notes=payload.notes if payload else None
    )
    return {'success': True, 'data': result.to_dict()}


@router.post('/cases/{case_id}/cancel')
def cancel(
    case_id: int,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    result = cancel_case(db, case_id=case_id, actor_id=actor_id, reason=payload.reason, notes=payload.notes)
    return {'success': True, 'data': result.to_dict()}


@router.patch('/documents/{entity_type}/{entity_id}/status')
def change_status(
    entity_type: str,
    entity_id: int,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    with unit_of_work(db):
        old_status, new_status = update_document_status(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            status=payload.status,
            actor_id=actor_id,
            note=payload.note,
        )
    return {'success': True, 'data': {'old_status': old_status, 'new_status': new_status}}


@router.post('/documents/{entity_type}/{entity_id}/submit')
def submit(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    with unit_of_work(db):
        status = submit_for_approval(db, entity_type=entity_type, entity_id=entity_id, actor_id=actor_id)
    return {'success': True, 'data': {'status': status.value}}


@router.get('/documents/{entity_type}/{entity_id}/history')
def document_history(entity_type: str, entity_id: int, db: Session = Depends(get_db)):
    rows = list_history(db, entity_type=entity_type, entity_id=entity_id)
    return {
        'success': True,
        'data': [
            {'status': row.status, 'notes': row.notes, 'created_by': row.created_by, 'created_at': row.created_at}
            for row in rows
        ],
    }


@router.get('/cases/{case_id}/timeline')
def timeline(case_id: int, db: Session = Depends(get_db)):
    case = db.get(Case, case_id)
    if case is None:
        raise NotFoundError(f'Case {case_id} not found')
    return {
        'success': True,
        'data': {
            'case_id': case.id,
            'case_number': case.case_number,
            'current_state': case.current_state.value,
            'status': case.status.value,
            'allowed_transitions': [s.value for s in allowed_transitions(case.current_state)],
            'transitions': case_timeline(db, case_id=case.id),
        },
    }
