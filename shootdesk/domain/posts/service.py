"""Post idea service - Business logic for post ideas, shots and shoot assignments"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import PostIdea
from ..clients.repository import ClientRepository
from ..shoots.repository import ShootRepository
from .repository import PostRepository
from .schemas import (
    CONTENT_TYPES,
    POST_STATUSES,
    CompletionUpdate,
    PostIdeaCreate,
    PostIdeaUpdate,
    ShotCreate,
    ShotUpdate,
)

logger = logging.getLogger(__name__)


class PostService:
    """Service layer for post idea business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PostRepository()
        self.clients = ClientRepository()
        self.shoots = ShootRepository()

    def get_post_ideas(
        self, client_id: Optional[int] = None, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[PostIdea]:
        posts = self.repo.get_post_ideas(self.db, client_id, status if status != "all" else None)
        if search:
            needle = search.lower()
            posts = [
                p
                for p in posts
                if needle in p.title.lower()
                or needle in (p.caption or "").lower()
                or needle in (p.notes or "").lower()
            ]
        return posts

    def get_post_idea(self, post_idea_id: int) -> PostIdea:
        post = self.repo.get_post_idea_by_id(self.db, post_idea_id)
        if not post:
            raise HTTPException(status_code=404, detail="Post idea not found")
        return post

    def create_post_idea(self, data: PostIdeaCreate) -> PostIdea:
        if not data.title or not data.title.strip():
            raise HTTPException(status_code=400, detail="Title is required")
        if not data.clientName:
            raise HTTPException(status_code=400, detail="Client is required")
        if not data.platforms:
            raise HTTPException(status_code=400, detail="At least one platform is required")
        if not data.contentType:
            raise HTTPException(status_code=400, detail="Content type is required")
        if data.contentType not in CONTENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid content type: {data.contentType}")

        client = self.clients.get_client_by_name(self.db, data.clientName)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        logger.info(f"📥 Creating post idea '{data.title.strip()}' for client {client.name}")
        post = self.repo.create_post_idea(
            self.db,
            title=data.title.strip(),
            client_id=client.id,
            platforms=data.platforms,
            content_type=data.contentType,
            caption=(data.caption or "").strip() or None,
            shot_list=data.shotList or [],
            notes=(data.notes or "").strip() or None,
            status="planned",
        )
        return self.repo.get_post_idea_by_id(self.db, post.id)

    def update_post_idea(self, post_idea_id: int, data: PostIdeaUpdate) -> PostIdea:
        post = self.get_post_idea(post_idea_id)

        if data.contentType is not None and data.contentType not in CONTENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid content type: {data.contentType}")
        if data.status is not None and data.status not in POST_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status: {data.status}")

        updates = {}
        if data.title:
            updates["title"] = data.title.strip()
        if data.platforms:
            updates["platforms"] = data.platforms
        if data.contentType is not None:
            updates["content_type"] = data.contentType
        if data.shotList is not None:
            updates["shot_list"] = data.shotList
        if data.status is not None:
            updates["status"] = data.status

        # caption/notes may be cleared with an empty string
        if data.caption is not None:
            post.caption = data.caption.strip() or None
        if data.notes is not None:
            post.notes = data.notes.strip() or None

        return self.repo.update_post_idea(self.db, post, **updates)

    def delete_post_idea(self, post_idea_id: int) -> dict:
        post = self.get_post_idea(post_idea_id)
        if self.repo.get_shoot_links(self.db, post.id):
            raise HTTPException(
                status_code=409,
                detail="Cannot delete post idea that is linked to shoots. Remove from shoots first.",
            )
        if self.repo.count_uploaded_files(self.db, post.id):
            raise HTTPException(status_code=409, detail="Cannot delete post idea with uploaded files")

        self.repo.delete_post_idea(self.db, post)
        logger.info(f"🗑️ Post idea {post_idea_id} deleted")
        return {"success": True, "message": "Post idea deleted successfully"}

    def get_dependencies(self, post_idea_id: int) -> dict:
        post = self.get_post_idea(post_idea_id)
        links = [link for link in self.repo.get_shoot_links(self.db, post.id) if link.shoot.deleted_at is None]
        file_count = self.repo.count_uploaded_files(self.db, post.id)
        return {
            "shoots": [
                {"id": link.shoot.id, "title": link.shoot.title, "completed": link.completed}
                for link in links
            ],
            "uploadedFilesCount": file_count,
            "canDelete": not links and not file_count,
        }

    # ========================================================================
    # SHOOT ASSIGNMENTS
    # ========================================================================

    def _get_shoot(self, shoot_id: Optional[int]):
        if not shoot_id or shoot_id < 1:
            raise HTTPException(status_code=400, detail="Valid shoot ID is required")
        shoot = self.shoots.get_shoot_by_id(self.db, shoot_id)
        if not shoot:
            raise HTTPException(status_code=404, detail="Shoot not found")
        return shoot

    def assign_to_shoot(self, post_idea_id: int, shoot_id: Optional[int]) -> dict:
        post = self.get_post_idea(post_idea_id)
        shoot = self._get_shoot(shoot_id)

        if self.repo.get_shoot_link(self.db, shoot.id, post.id):
            raise HTTPException(status_code=409, detail="Post is already assigned to this shoot")

        try:
            self.repo.add_to_shoot(self.db, shoot.id, post.id)
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Post is already assigned to this shoot") from e

        logger.info(f"✅ Post idea {post.id} assigned to shoot {shoot.id}")
        return {
            "success": True,
            "message": f'Post "{post.title}" assigned to shoot "{shoot.title}" successfully',
        }

    def remove_from_shoot(self, post_idea_id: int, shoot_id: Optional[int]) -> dict:
        post = self.get_post_idea(post_idea_id)
        shoot = self._get_shoot(shoot_id)

        link = self.repo.get_shoot_link(self.db, shoot.id, post.id)
        if not link:
            raise HTTPException(status_code=404, detail="Post assignment not found")

        self.repo.remove_from_shoot(self.db, link)
        self.repo.sync_status_with_uploads(self.db, post)
        return {
            "success": True,
            "message": f'Post "{post.title}" removed from shoot "{shoot.title}" successfully',
        }

    def set_completion(self, post_idea_id: int, data: CompletionUpdate) -> dict:
        """Mark a post idea as shot (or not) within one shoot, then re-derive its status"""
        post = self.get_post_idea(post_idea_id)
        shoot = self._get_shoot(data.shootId)

        link = self.repo.get_shoot_link(self.db, shoot.id, post.id)
        if not link:
            raise HTTPException(status_code=404, detail="Post assignment not found")

        link = self.repo.set_completed(self.db, link, data.completed)
        result = self.repo.sync_status_with_uploads(self.db, post)
        return {
            "success": True,
            "postId": post.id,
            "shootId": shoot.id,
            "completed": link.completed,
            "completedAt": link.completed_at,
            "status": result["currentStatus"],
        }

    # ========================================================================
    # SHOT LIST
    # ========================================================================

    def add_shot(self, post_idea_id: int, data: ShotCreate) -> dict:
        if not data.text or not data.text.strip():
            raise HTTPException(status_code=400, detail="Shot text is required")
        post = self.get_post_idea(post_idea_id)

        # JSON columns only persist on reassignment
        shot_list = [*(post.shot_list or []), data.text.strip()]
        self.repo.update_post_idea(self.db, post, shot_list=shot_list)

        return {
            "success": True,
            "message": "Shot added successfully",
            "shot": {
                "id": len(shot_list) - 1,
                "text": data.text.strip(),
                "notes": (data.notes or "").strip() or None,
                "completed": False,
                "postIdeaId": post.id,
            },
            "shotList": shot_list,
        }

    def update_shot(self, post_idea_id: int, data: ShotUpdate) -> dict:
        if data.shotId is None or data.shotId < 0:
            raise HTTPException(status_code=400, detail="Valid shot ID is required")
        if not data.text or not data.text.strip():
            raise HTTPException(status_code=400, detail="Shot text is required")
        post = self.get_post_idea(post_idea_id)

        shot_list = list(post.shot_list or [])
        if data.shotId >= len(shot_list):
            raise HTTPException(status_code=404, detail="Shot not found")
        shot_list[data.shotId] = data.text.strip()
        self.repo.update_post_idea(self.db, post, shot_list=shot_list)

        return {
            "success": True,
            "message": "Shot updated successfully",
            "shot": {
                "id": data.shotId,
                "text": data.text.strip(),
                "notes": (data.notes or "").strip() or None,
                "completed": False,
                "postIdeaId": post.id,
            },
            "shotList": shot_list,
        }

    def sync_status(self, post_idea_id: int) -> dict:
        post = self.get_post_idea(post_idea_id)
        result = self.repo.sync_status_with_uploads(self.db, post)
        if result["updated"]:
            message = f"Post status updated to '{result['currentStatus']}' based on uploaded files"
        else:
            message = f"Post status is already correct: '{result['currentStatus']}'"
        return {"success": True, "postId": post.id, **result, "message": message}
