"""Post idea router - FastAPI endpoints for post ideas"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    CompletionUpdate,
    PostIdeaCreate,
    PostIdeaResponse,
    PostIdeaUpdate,
    ShootAssignment,
    ShotCreate,
    ShotUpdate,
)
from .service import PostService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["Posts"])


def get_post_service(db: Session = Depends(get_db)) -> PostService:
    """Dependency injection for PostService"""
    return PostService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("")
async def get_post_ideas(
    clientId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    posts = service.get_post_ideas(clientId, status, search)
    return {
        "success": True,
        "posts": [PostIdeaResponse.from_model(p) for p in posts],
        "totalCount": len(posts),
    }


@router.post("", status_code=201)
async def create_post_idea(
    data: PostIdeaCreate,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    post = service.create_post_idea(data)
    return {
        "success": True,
        "message": "Post idea created successfully",
        "post": PostIdeaResponse.from_model(post),
    }


@router.get("/{post_idea_id}")
async def get_post_idea(
    post_idea_id: int,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    post = service.get_post_idea(post_idea_id)
    return {"success": True, "postIdea": PostIdeaResponse.from_model(post)}


@router.patch("/{post_idea_id}")
async def update_post_idea(
    post_idea_id: int,
    data: PostIdeaUpdate,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    post = service.update_post_idea(post_idea_id, data)
    return {
        "success": True,
        "message": "Post idea updated successfully",
        "postIdea": PostIdeaResponse.from_model(post),
    }


@router.delete("/{post_idea_id}")
async def delete_post_idea(
    post_idea_id: int,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.delete_post_idea(post_idea_id)


@router.get("/{post_idea_id}/dependencies")
async def get_post_idea_dependencies(
    post_idea_id: int,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    """Shoots and uploads that block deleting a post idea"""
    return {"success": True, "dependencies": service.get_dependencies(post_idea_id)}


# ============================================================================
# SHOOT ASSIGNMENTS
# ============================================================================


@router.post("/{post_idea_id}/assign-to-shoot")
async def assign_to_shoot(
    post_idea_id: int,
    data: ShootAssignment,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.assign_to_shoot(post_idea_id, data.shootId)


@router.post("/{post_idea_id}/remove-from-shoot")
async def remove_from_shoot(
    post_idea_id: int,
    data: ShootAssignment,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.remove_from_shoot(post_idea_id, data.shootId)


@router.patch("/{post_idea_id}/completion")
async def set_completion(
    post_idea_id: int,
    data: CompletionUpdate,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.set_completion(post_idea_id, data)


@router.post("/{post_idea_id}/sync-status")
async def sync_post_status(
    post_idea_id: int,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.sync_status(post_idea_id)


# ============================================================================
# SHOT LIST
# ============================================================================


@router.post("/{post_idea_id}/shots")
async def add_shot(
    post_idea_id: int,
    data: ShotCreate,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.add_shot(post_idea_id, data)


@router.patch("/{post_idea_id}/shots")
async def update_shot(
    post_idea_id: int,
    data: ShotUpdate,
    current_user: User = Depends(get_current_user),
    service: PostService = Depends(get_post_service),
):
    return service.update_shot(post_idea_id, data)
