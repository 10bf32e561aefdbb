"""Shoot repository - Database operations for shoots"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Client, PostIdea, Shoot, ShootPostIdea


class ShootRepository:
    """Repository for shoot database operations; soft-deleted shoots are never returned"""

    @staticmethod
    def get_shoots(db: Session, client_id: Optional[int] = None) -> list[Shoot]:
        query = (
            db.query(Shoot)
            .options(joinedload(Shoot.client))
            .filter(Shoot.deleted_at.is_(None))
        )
        if client_id is not None:
            query = query.filter(Shoot.client_id == client_id)
        return query.order_by(Shoot.scheduled_at).all()

    @staticmethod
    def get_shoot_by_id(db: Session, shoot_id: int) -> Optional[Shoot]:
        return (
            db.query(Shoot)
            .options(joinedload(Shoot.client))
            .filter(Shoot.id == shoot_id, Shoot.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def get_client_by_name(db: Session, name: str) -> Optional[Client]:
        return db.query(Client).filter(Client.name == name).first()

    @staticmethod
    def get_post_idea_counts(db: Session, shoot_ids: list[int]) -> dict[int, int]:
        """Number of assigned post ideas per shoot id"""
        if not shoot_ids:
            return {}
        rows = (
            db.query(ShootPostIdea.shoot_id, func.count(ShootPostIdea.id))
            .filter(ShootPostIdea.shoot_id.in_(shoot_ids))
            .group_by(ShootPostIdea.shoot_id)
            .all()
        )
        return {shoot_id: count for shoot_id, count in rows}

    @staticmethod
    def create_shoot(db: Session, **shoot_data) -> Shoot:
        shoot = Shoot(**shoot_data)
        db.add(shoot)
        db.commit()
        db.refresh(shoot)
        return shoot

    @staticmethod
    def update_shoot(db: Session, shoot: Shoot, **updates) -> Shoot:
        """Apply updates verbatim; None values clear the column"""
        for key, value in updates.items():
            if hasattr(shoot, key):
                setattr(shoot, key, value)
        shoot.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(shoot)
        return shoot

    @staticmethod
    def soft_delete_shoot(db: Session, shoot: Shoot, deleted_by: Optional[str] = None) -> Shoot:
        shoot.deleted_at = datetime.utcnow()
        shoot.deleted_by = deleted_by
        shoot.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(shoot)
        return shoot

    @staticmethod
    def get_post_links(db: Session, shoot_id: int) -> list[ShootPostIdea]:
        """Shoot/post-idea links with their post ideas, in assignment order"""
        return (
            db.query(ShootPostIdea)
            .options(joinedload(ShootPostIdea.post_idea))
            .filter(ShootPostIdea.shoot_id == shoot_id)
            .order_by(ShootPostIdea.created_at, ShootPostIdea.id)
            .all()
        )

    @staticmethod
    def get_assigned_post_idea_ids(db: Session, shoot_id: int) -> list[int]:
        rows = db.query(ShootPostIdea.post_idea_id).filter(ShootPostIdea.shoot_id == shoot_id).all()
        return [row[0] for row in rows]

    @staticmethod
    def get_client_post_ideas(db: Session, client_id: int) -> list[PostIdea]:
        return (
            db.query(PostIdea)
            .filter(PostIdea.client_id == client_id)
            .order_by(PostIdea.created_at.desc(), PostIdea.id.desc())
            .all()
        )
