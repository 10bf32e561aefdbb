"""Client repository - Database operations for clients"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Client, PostIdea, Shoot


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_clients(db: Session) -> list[Client]:
        return db.query(Client).order_by(Client.name).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id).first()

    @staticmethod
    def get_client_by_name(db: Session, name: str) -> Optional[Client]:
        return db.query(Client).filter(Client.name == name).first()

    @staticmethod
    def get_counts(db: Session) -> tuple[dict[int, int], dict[int, int]]:
        """(shoots per client, post ideas per client); soft-deleted shoots excluded"""
        shoot_rows = (
            db.query(Shoot.client_id, func.count(Shoot.id))
            .filter(Shoot.deleted_at.is_(None))
            .group_by(Shoot.client_id)
            .all()
        )
        post_rows = db.query(PostIdea.client_id, func.count(PostIdea.id)).group_by(PostIdea.client_id).all()
        return dict(shoot_rows), dict(post_rows)

    @staticmethod
    def count_references(db: Session, client_id: int) -> tuple[int, int]:
        """Shoots (including soft-deleted, they still hold the FK) and post ideas"""
        shoots = db.query(Shoot).filter(Shoot.client_id == client_id).count()
        posts = db.query(PostIdea).filter(PostIdea.client_id == client_id).count()
        return shoots, posts

    @staticmethod
    def create_client(db: Session, **client_data) -> Client:
        client = Client(**client_data)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(client, key):
                setattr(client, key, value)

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def delete_client(db: Session, client: Client) -> None:
        db.delete(client)
        db.commit()
