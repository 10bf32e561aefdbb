import logging
import re
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY
from ..database import get_db
from ..domain.posts.repository import PostRepository
from ..models import PostIdea, Shoot, UploadedFile, User
from ..security_utils import sanitize_filename
from ..utils.date_time import isoformat_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["Uploads"])

# Presigned URL expiration time (1 hour)
PRESIGNED_URL_EXPIRATION = 3600

# Raw shoot footage can be large
MAX_FILE_SIZE = 500 * 1024 * 1024  # 500MB


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = get_r2_client()
    try:
        url = r2.generate_presigned_url(
            "get_object",
            Params={"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"},
            ExpiresIn=expiration,
        )
        return url
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        raise


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "client"


def build_object_key(client_name: str, shoot_id: int, filename: str) -> str:
    """clients/<client>/shoots/<shoot>/<uuid>-<name>"""
    return f"clients/{slugify(client_name)}/shoots/{shoot_id}/{uuid.uuid4()}-{filename}"


def serialize_upload(upload: UploadedFile, url: Optional[str] = None) -> dict:
    return {
        "id": upload.id,
        "fileName": upload.file_name,
        "fileSize": upload.file_size,
        "mimeType": upload.mime_type,
        "notes": upload.notes,
        "key": upload.file_path,
        "url": url,
        "postIdeaId": upload.post_idea_id,
        "shootId": upload.shoot_id,
        "uploadedAt": isoformat_utc(upload.uploaded_at),
    }


@router.post("")
async def upload_file(
    file: Optional[UploadFile] = File(None),
    shootId: Optional[int] = Form(None),
    postIdeaId: Optional[int] = Form(None),
    notes: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upload raw footage for a post idea in a shoot to R2 (private)."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")
    if not shootId:
        raise HTTPException(status_code=400, detail="shootId is required")
    if not postIdeaId:
        raise HTTPException(status_code=400, detail="postIdeaId is required for file uploads")

    logger.info(f"📤 Uploading '{file.filename}' for shoot {shootId}, post idea {postIdeaId}")

    shoot = db.query(Shoot).filter(Shoot.id == shootId, Shoot.deleted_at.is_(None)).first()
    post_idea = db.query(PostIdea).filter(PostIdea.id == postIdeaId).first()
    if not shoot or not post_idea:
        raise HTTPException(status_code=404, detail="Shoot or post idea not found")

    if not file.filename:
        raise HTTPException(status_code=400, detail="Invalid filename")
    if len(file.filename) > 255:
        raise HTTPException(status_code=400, detail="Filename too long - maximum 255 characters")
    safe_name = sanitize_filename(file.filename)
    if not safe_name:
        logger.warning(f"❌ Rejected filename: '{file.filename}'")
        raise HTTPException(status_code=400, detail="Invalid filename")

    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(contents) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds 500MB limit. Your file is {len(contents) / (1024 * 1024):.2f}MB.",
        )

    key = build_object_key(shoot.client.name, shoot.id, safe_name)
    try:
        r2 = get_r2_client()
        r2.put_object(
            Bucket=R2_BUCKET_NAME,
            Key=key,
            Body=contents,
            ContentType=file.content_type or "application/octet-stream",
        )

        upload = UploadedFile(
            post_idea_id=post_idea.id,
            shoot_id=shoot.id,
            file_name=safe_name,
            file_path=key,  # Store key, not URL
            file_size=len(contents),
            mime_type=file.content_type,
            notes=(notes or "").strip() or None,
        )
        db.add(upload)
        db.commit()
        db.refresh(upload)

        status = PostRepository.sync_status_with_uploads(db, post_idea)
        logger.info(f"✅ Uploaded {key} ({len(contents)} bytes)")

        return {
            "success": True,
            "file": serialize_upload(upload, generate_presigned_url(key)),
            "postStatus": status["currentStatus"],
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Upload failed: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Upload failed") from e


@router.get("")
async def list_uploads(
    shootId: Optional[int] = Query(None),
    postIdeaId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Uploaded files with short-lived download URLs"""
    if not shootId and not postIdeaId:
        raise HTTPException(status_code=400, detail="shootId or postIdeaId is required")

    query = db.query(UploadedFile)
    if shootId:
        query = query.filter(UploadedFile.shoot_id == shootId)
    if postIdeaId:
        query = query.filter(UploadedFile.post_idea_id == postIdeaId)
    uploads = query.order_by(UploadedFile.uploaded_at.desc(), UploadedFile.id.desc()).all()

    files = []
    for upload in uploads:
        try:
            url = generate_presigned_url(upload.file_path)
        except Exception:
            url = None
        files.append(serialize_upload(upload, url))

    return {"success": True, "files": files, "totalCount": len(files)}
