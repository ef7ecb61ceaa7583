import argparse
from datetime import date

from sqlalchemy.orm import Session

from caseflow.db import SessionLocal
from caseflow.errors import ValidationError
from caseflow.logging_config import configure_logging
from caseflow.services.case_workflow_service import unit_of_work
from caseflow.services.document_number_service import (
    allocate_document_number,
    current_financial_year,
    peek_last_sequence,
)


def issue_document_numbers(db: Session, *, document_type: str, count: int, financial_year: str | None = None) -> list[str]:
    if count < 1:
        raise ValidationError('count must be at least 1')
    with unit_of_work(db):
        return [allocate_document_number(db, document_type, financial_year) for _ in range(count)]


def main() -> None:
    parser = argparse.ArgumentParser(description='Issue or inspect document numbers.')
    parser.add_argument('document_type', help='Document type code, e.g. Q, SO, WO.')
    parser.add_argument('--year', help='Financial year code such as 2526. Defaults to the current year.')
    parser.add_argument('--count', type=int, default=1, help='How many numbers to issue.')
    parser.add_argument('--peek', action='store_true', help='Show the last issued counter without issuing.')
    args = parser.parse_args()

    configure_logging()
    year = args.year or current_financial_year(date.today())
    with SessionLocal() as db:
        if args.peek:
            print(f'{args.document_type}/{year}: last issued counter {peek_last_sequence(db, args.document_type, year)}')
            return
        for identifier in issue_document_numbers(db, document_type=args.document_type, count=args.count, financial_year=year):
            print(identifier)


if __name__ == '__main__':
    main()
