from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import BadRequest, NotFound, api_endpoint, read_json
from app.champion.constants import VIDEO_REVIEW_STATUSES
from app.champion.db import db_session
from app.champion.modules.videos.models import VideoAnalysis
from app.champion.modules.videos.service import admin_delete_video, admin_update_video, upload_video
from app.champion.rbac import admin_required, get_owned_or_404, login_required
from app.champion.utils import parse_bool, parse_int

bp = Blueprint("videos_api", __name__)

ADMIN_VIDEO_TAKE = 100


@bp.post("/video-analysis/upload")
@login_required
@api_endpoint("Failed to upload video")
def upload():
    f = request.files.get("file")
    if not f or not f.filename:
        raise BadRequest("No file provided")
    s = db_session()
    video = upload_video(s, g.current_user, f, request.form.get("title"))
    s.commit()
    return {"success": True, "video": video.to_dict()}, 201


@bp.get("/video-analysis")
@login_required
@api_endpoint("Failed to fetch videos")
def videos_list():
    s = db_session()
    videos = (
        s.query(VideoAnalysis)
        .filter(VideoAnalysis.user_id == g.current_user.id)
        .order_by(VideoAnalysis.created_at.desc(), VideoAnalysis.id.desc())
        .all()
    )
    return {"videos": [v.to_dict() for v in videos]}


@bp.get("/video-analysis/<int:video_id>")
@login_required
@api_endpoint("Failed to fetch video")
def videos_detail(video_id: int):
    s = db_session()
    video = get_owned_or_404(s, VideoAnalysis, video_id, g.current_user, message="Video not found")
    return {"video": video.to_dict()}


# ---------- Admin ----------
def _video_or_404(s, video_id: int) -> VideoAnalysis:
    video = s.get(VideoAnalysis, video_id)
    if video is None:
        raise NotFound("Video not found")
    return video


@bp.get("/admin/videos")
@admin_required
@api_endpoint("Failed to fetch videos")
def admin_videos_list():
    s = db_session()
    q = s.query(VideoAnalysis)
    flagged = parse_bool(request.args.get("flagged"))
    if flagged is not None:
        q = q.filter(VideoAnalysis.flagged_for_review.is_(flagged))
    review_status = (request.args.get("reviewStatus") or "").strip().upper()
    if review_status:
        if review_status not in VIDEO_REVIEW_STATUSES:
            raise BadRequest(f"Invalid reviewStatus. Must be one of: {', '.join(VIDEO_REVIEW_STATUSES)}")
        q = q.filter(VideoAnalysis.review_status == review_status)
    user_id = parse_int(request.args.get("userId"))
    if user_id is not None:
        q = q.filter(VideoAnalysis.user_id == user_id)
    videos = q.order_by(VideoAnalysis.created_at.desc(), VideoAnalysis.id.desc()).limit(ADMIN_VIDEO_TAKE).all()
    return {"videos": [v.to_dict(admin=True) for v in videos]}


@bp.get("/admin/videos/<int:video_id>")
@admin_required
@api_endpoint("Failed to fetch video")
def admin_videos_detail(video_id: int):
    s = db_session()
    return {"video": _video_or_404(s, video_id).to_dict(admin=True)}


@bp.patch("/admin/videos/<int:video_id>")
@admin_required
@api_endpoint("Failed to update video")
def admin_videos_update(video_id: int):
    payload = read_json()
    s = db_session()
    video = _video_or_404(s, video_id)
    admin_update_video(s, video, payload, g.current_user)
    s.commit()
    return {"success": True, "video": video.to_dict(admin=True), "message": "Video updated successfully"}


@bp.delete("/admin/videos/<int:video_id>")
@admin_required
@api_endpoint("Failed to delete video")
def admin_videos_delete(video_id: int):
    s = db_session()
    video = _video_or_404(s, video_id)
    admin_delete_video(s, video, g.current_user)
    s.commit()
    return {"success": True, "message": "Video deleted successfully"}
