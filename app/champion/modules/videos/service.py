from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from app.champion.api import BadRequest, text_field
from app.champion.audit import SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, record_event
from app.champion.constants import VIDEO_EXTENSIONS, VIDEO_REVIEW_STATUSES
from app.champion.modules.videos.models import VideoAnalysis
from app.champion.security import (
    ADMIN_VIDEO_DELETED,
    ADMIN_VIDEO_FLAGGED,
    ADMIN_VIDEO_NOTES_UPDATED,
    ADMIN_VIDEO_REVIEWED,
)
from app.champion.storage import storage_from_config
from app.champion.utils import parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

logger = logging.getLogger(__name__)

ADMIN_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def upload_video(s: "Session", user: "User", upload: FileStorage, title: str | None = None) -> VideoAnalysis:
    filename = secure_filename(upload.filename or "")
    if not filename:
        raise BadRequest("No file provided")
    if _extension(filename) not in VIDEO_EXTENSIONS:
        raise BadRequest(f"Invalid file type. Allowed: {', '.join(sorted(VIDEO_EXTENSIONS))}")

    data = upload.read()
    if not data:
        raise BadRequest("Uploaded file is empty")
    max_bytes = int(current_app.config.get("VIDEO_MAX_BYTES") or 0)
    if max_bytes and len(data) > max_bytes:
        raise BadRequest(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")

    key = f"videos/{user.id}/{uuid.uuid4().hex}-{filename}"
    storage = storage_from_config(current_app.config)
    storage.put_bytes(key, data, content_type=upload.mimetype or None)

    video = VideoAnalysis(
        user_id=user.id,
        title=(title or "").strip()[:255] or filename.rsplit(".", 1)[0],
        file_name=filename,
        storage_key=key,
        content_type=upload.mimetype or None,
        file_size=len(data),
        analysis_status="PENDING",
        review_status="PENDING",
    )
    s.add(video)
    logger.info("User %s uploaded video %s (%d bytes)", user.id, key, len(data))
    return video


def admin_update_video(s: "Session", video: VideoAnalysis, payload: dict, admin: "User") -> VideoAnalysis:
    """
    Apply moderation fields. Each kind of change (flag, review, notes) gets
    its own security log row.
    """
    now = utcnow()
    changes: dict = {}

    if "reviewStatus" in payload:
        review_status = text_field(payload, "reviewStatus").upper()
        if review_status not in VIDEO_REVIEW_STATUSES:
            raise BadRequest(f"Invalid reviewStatus. Must be one of: {', '.join(VIDEO_REVIEW_STATUSES)}")
    if "adminPriority" in payload and payload.get("adminPriority") is not None:
        priority = text_field(payload, "adminPriority").upper()
        if priority not in ADMIN_PRIORITIES:
            raise BadRequest(f"Invalid adminPriority. Must be one of: {', '.join(ADMIN_PRIORITIES)}")

    if "adminNotes" in payload:
        video.admin_notes = text_field(payload, "adminNotes") or None
        video.admin_notes_updated_at = now
        video.admin_notes_updated_by_user_id = admin.id
        changes["adminNotes"] = True

    if "flaggedForReview" in payload:
        flagged = bool(parse_bool(payload.get("flaggedForReview")))
        video.flagged_for_review = flagged
        if flagged:
            video.flagged_at = now
            video.flagged_by_user_id = admin.id
            video.flagged_reason = text_field(payload, "flaggedReason")[:512] or video.flagged_reason
        else:
            video.flagged_at = None
            video.flagged_by_user_id = None
            video.flagged_reason = None
        changes["flaggedForReview"] = flagged

    if "reviewStatus" in payload:
        video.review_status = review_status
        video.reviewed_at = now
        video.reviewed_by_user_id = admin.id
        changes["reviewStatus"] = review_status

    if "reviewComments" in payload:
        video.review_comments = text_field(payload, "reviewComments") or None
        changes["reviewComments"] = True

    if "adminPriority" in payload:
        video.admin_priority = priority if payload.get("adminPriority") is not None else None
        changes["adminPriority"] = video.admin_priority

    metadata = {"videoId": video.id, "changes": changes}
    if "flaggedForReview" in changes:
        action = "flagged" if changes["flaggedForReview"] else "unflagged"
        reason = f": {video.flagged_reason}" if video.flagged_reason else ""
        record_event(
            s,
            user_id=video.user_id,
            actor=admin,
            event_type=ADMIN_VIDEO_FLAGGED,
            severity=SEVERITY_HIGH,
            description=f'Admin {action} video "{video.title}" for review{reason}',
            metadata=metadata,
        )
    if "reviewStatus" in changes:
        record_event(
            s,
            user_id=video.user_id,
            actor=admin,
            event_type=ADMIN_VIDEO_REVIEWED,
            severity=SEVERITY_MEDIUM,
            description=f'Admin reviewed video "{video.title}" - Status: {video.review_status}',
            metadata=metadata,
        )
    if "adminNotes" in changes:
        record_event(
            s,
            user_id=video.user_id,
            actor=admin,
            event_type=ADMIN_VIDEO_NOTES_UPDATED,
            severity=SEVERITY_LOW,
            description=f'Admin updated notes on video "{video.title}"',
            metadata=metadata,
        )
    return video


def admin_delete_video(s: "Session", video: VideoAnalysis, admin: "User") -> None:
    storage = storage_from_config(current_app.config)
    storage.delete(video.storage_key)
    record_event(
        s,
        user_id=video.user_id,
        actor=admin,
        event_type=ADMIN_VIDEO_DELETED,
        severity=SEVERITY_HIGH,
        description=f'Admin deleted video "{video.title}"',
        metadata={"videoId": video.id, "fileName": video.file_name, "wasAdminUpload": video.admin_upload},
    )
    s.delete(video)
