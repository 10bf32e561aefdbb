"""Post idea repository - Database operations for post ideas and shoot assignments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import PostIdea, ShootPostIdea, UploadedFile


class PostRepository:
    """Repository for post idea database operations"""

    @staticmethod
    def get_post_ideas(
        db: Session, client_id: Optional[int] = None, status: Optional[str] = None
    ) -> list[PostIdea]:
        query = db.query(PostIdea).options(joinedload(PostIdea.client))
        if client_id is not None:
            query = query.filter(PostIdea.client_id == client_id)
        if status:
            query = query.filter(PostIdea.status == status)
        return query.order_by(PostIdea.created_at.desc(), PostIdea.id.desc()).all()

    @staticmethod
    def get_post_idea_by_id(db: Session, post_idea_id: int) -> Optional[PostIdea]:
        return (
            db.query(PostIdea)
            .options(joinedload(PostIdea.client))
            .filter(PostIdea.id == post_idea_id)
            .first()
        )

    @staticmethod
    def create_post_idea(db: Session, **post_data) -> PostIdea:
        post = PostIdea(**post_data)
        db.add(post)
        db.commit()
        db.refresh(post)
        return post

    @staticmethod
    def update_post_idea(db: Session, post: PostIdea, **updates) -> PostIdea:
        """Update a post idea with provided (non-None) fields"""
        for key, value in updates.items():
            if value is not None and hasattr(post, key):
                setattr(post, key, value)
        post.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(post)
        return post

    @staticmethod
    def delete_post_idea(db: Session, post: PostIdea) -> None:
        db.delete(post)
        db.commit()

    # ------------------------------------------------------------------
    # Shoot assignments
    # ------------------------------------------------------------------

    @staticmethod
    def get_shoot_link(db: Session, shoot_id: int, post_idea_id: int) -> Optional[ShootPostIdea]:
        return (
            db.query(ShootPostIdea)
            .filter(ShootPostIdea.shoot_id == shoot_id, ShootPostIdea.post_idea_id == post_idea_id)
            .first()
        )

    @staticmethod
    def get_shoot_links(db: Session, post_idea_id: int) -> list[ShootPostIdea]:
        return (
            db.query(ShootPostIdea)
            .options(joinedload(ShootPostIdea.shoot))
            .filter(ShootPostIdea.post_idea_id == post_idea_id)
            .all()
        )

    @staticmethod
    def add_to_shoot(db: Session, shoot_id: int, post_idea_id: int) -> ShootPostIdea:
        link = ShootPostIdea(shoot_id=shoot_id, post_idea_id=post_idea_id)
        db.add(link)
        db.commit()
        db.refresh(link)
        return link

    @staticmethod
    def remove_from_shoot(db: Session, link: ShootPostIdea) -> None:
        db.delete(link)
        db.commit()

    @staticmethod
    def set_completed(db: Session, link: ShootPostIdea, completed: bool) -> ShootPostIdea:
        link.completed = completed
        link.completed_at = datetime.utcnow() if completed else None
        db.commit()
        db.refresh(link)
        return link

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    @staticmethod
    def count_uploaded_files(db: Session, post_idea_id: int) -> int:
        return db.query(UploadedFile).filter(UploadedFile.post_idea_id == post_idea_id).count()

    @staticmethod
    def sync_status_with_uploads(db: Session, post: PostIdea) -> dict:
        """
        Derive the post status from what happened to it:
        uploaded when files exist, shot when completed in any shoot, otherwise planned.
        """
        previous_status = post.status
        has_files = PostRepository.count_uploaded_files(db, post.id) > 0
        completed = (
            db.query(ShootPostIdea)
            .filter(ShootPostIdea.post_idea_id == post.id, ShootPostIdea.completed.is_(True))
            .count()
            > 0
        )

        if has_files:
            status = "uploaded"
        elif completed:
            status = "shot"
        else:
            status = "planned"

        updated = status != previous_status
        if updated:
            post.status = status
            post.updated_at = datetime.utcnow()
            db.commit()

        return {
            "previousStatus": previous_status,
            "currentStatus": status,
            "hasFiles": has_files,
            "updated": updated,
        }
