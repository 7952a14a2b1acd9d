"""Client repository - Client directory lookups keyed by normalized phone"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Client

logger = logging.getLogger(__name__)


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_client_by_phone(db: Session, tenant_id: int, phone: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.tenant_id == tenant_id, Client.phone == phone)
            .first()
        )

    @staticmethod
    def upsert_client(
        db: Session, tenant_id: int, name: str, phone: str, email: Optional[str] = None
    ) -> int:
        """
        Find the tenant's client by normalized phone or create one.

        An existing record keeps its name; a missing email is filled in. Runs
        inside the caller's transaction (flush only). The insert runs in a
        savepoint so that a concurrent booking creating the same client first
        leaves the outer transaction usable.

        Returns:
            The client id
        """
        client = ClientRepository.get_client_by_phone(db, tenant_id, phone)
        if client:
            if email and not client.email:
                client.email = email
                db.flush()
            return client.id

        try:
            with db.begin_nested():
                client = Client(tenant_id=tenant_id, name=name, phone=phone, email=email)
                db.add(client)
                db.flush()
        except IntegrityError:
            client = ClientRepository.get_client_by_phone(db, tenant_id, phone)
            if client is None:
                raise
            logger.info(f"👤 Client for tenant {tenant_id} was created concurrently, reusing {client.id}")
            return client.id

        logger.info(f"👤 Created client {client.id} for tenant {tenant_id}")
        return client.id
