from sqlalchemy import select

from caseflow.db import SessionLocal, create_db_and_tables
from caseflow.models import Client, SalesEnquiry, User
from caseflow.services.case_workflow_service import open_case, unit_of_work
from caseflow.services.document_service import create_enquiry


def seed() -> None:
    create_db_and_tables()
    with SessionLocal() as db:
        with unit_of_work(db):
            admin = db.execute(select(User).where(User.username == 'sales-admin')).scalar_one_or_none()
            if not admin:
                admin = User(username='sales-admin', full_name='Sales Admin', role='sales-admin', active=True)
                db.add(admin)
                db.flush()

            director = db.execute(select(User).where(User.username == 'director')).scalar_one_or_none()
            if not director:
                db.add(User(username='director', full_name='Director', role='director', active=True))

            client = db.execute(select(Client).where(Client.company_name == 'Demo Engineering Pvt Ltd')).scalar_one_or_none()
            if not client:
                client = Client(company_name='Demo Engineering Pvt Ltd', contact_person='Purchase Desk', address='Plot 12, MIDC')
                db.add(client)
                db.flush()

            enquiry = db.execute(
                select(SalesEnquiry).where(SalesEnquiry.client_id == client.id, SalesEnquiry.project_name == 'Control Panel Retrofit')
            ).scalar_one_or_none()
            if not enquiry:
                enquiry = create_enquiry(
                    db,
                    client_id=client.id,
                    project_name='Control Panel Retrofit',
                    description='Replace legacy relay logic with PLC panel',
                    actor_id=admin.id,
                )

        if enquiry.case_id is None:
            open_case(db, enquiry_id=enquiry.id, actor_id=admin.id)


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
