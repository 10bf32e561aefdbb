"""Client service - Business logic for client operations"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Client
from .repository import ClientRepository
from .schemas import ClientCreate, ClientResponse, ClientUpdate

logger = logging.getLogger(__name__)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    @staticmethod
    def to_response(client: Client, shoots_count: int = 0, posts_count: int = 0) -> ClientResponse:
        return ClientResponse(
            id=client.id,
            name=client.name,
            primaryContactName=client.primary_contact_name,
            email=client.primary_contact_email,
            phone=client.primary_contact_phone,
            website=client.website,
            socialMedia=client.social_media,
            notes=client.notes,
            shootsCount=shoots_count,
            postIdeasCount=posts_count,
            created_at=client.created_at,
        )

    def with_counts(self, client: Client) -> ClientResponse:
        shoots = sum(1 for s in client.shoots if s.deleted_at is None)
        return self.to_response(client, shoots, len(client.post_ideas))

    def get_clients(self) -> list[ClientResponse]:
        """All clients with their shoot and post idea counts"""
        shoots, posts = self.repo.get_counts(self.db)
        return [
            self.to_response(c, shoots.get(c.id, 0), posts.get(c.id, 0))
            for c in self.repo.get_clients(self.db)
        ]

    def get_client(self, client_id: int) -> Client:
        client = self.repo.get_client_by_id(self.db, client_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def create_client(self, data: ClientCreate) -> Client:
        if not data.name:
            raise HTTPException(status_code=400, detail="Client name is required")
        if self.repo.get_client_by_name(self.db, data.name):
            raise HTTPException(status_code=409, detail="A client with this name already exists")

        logger.info(f"📥 Creating client: {data.name}")
        return self.repo.create_client(
            self.db,
            name=data.name,
            primary_contact_name=data.primaryContactName,
            primary_contact_email=data.email,
            primary_contact_phone=data.phone,
            website=data.website,
            social_media=data.socialMedia,
            notes=data.notes,
        )

    def update_client(self, client_id: int, data: ClientUpdate) -> Client:
        client = self.get_client(client_id)

        if data.name and data.name != client.name:
            existing = self.repo.get_client_by_name(self.db, data.name)
            if existing and existing.id != client.id:
                raise HTTPException(status_code=409, detail="A client with this name already exists")

        updates = {
            "name": data.name,
            "primary_contact_name": data.primaryContactName,
            "primary_contact_email": data.email,
            "primary_contact_phone": data.phone,
            "website": data.website,
            "social_media": data.socialMedia,
        }
        if data.notes is not None:
            client.notes = data.notes.strip() or None

        return self.repo.update_client(self.db, client, **updates)

    def delete_client(self, client_id: int) -> dict:
        client = self.get_client(client_id)

        shoots, posts = self.repo.count_references(self.db, client.id)
        if shoots or posts:
            logger.warning(f"⚠️ Refusing to delete client {client.id}: {shoots} shoots, {posts} post ideas")
            raise HTTPException(
                status_code=409,
                detail=f"Cannot delete client with {shoots} shoot(s) and {posts} post idea(s)",
            )

        self.repo.delete_client(self.db, client)
        logger.info(f"🗑️ Client {client_id} deleted")
        return {"success": True, "message": "Client deleted"}
