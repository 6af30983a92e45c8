import os
import random
import time
import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.analysis import AnalysisPipeline
from app.core.config import ALLOWED_VIDEO_MIMES, get_settings
from app.core.decision import utc_now_iso
from app.core.exceptions import UploadTooLargeError
from app.core.sports_rules import available_sports, normalize_sport, profile_for
from app.core.video_utils import VideoAsset, format_file_size

logger = logging.getLogger(__name__)

router = APIRouter()

CHUNK_SIZE = 1024 * 1024


class DecisionOut(BaseModel):
    timestamp: str
    sport: str
    videoDuration: float
    decision: str
    confidence: str
    finalCall: str
    hasAudio: bool
    processedAsFullVideo: bool


class UploadResponse(BaseModel):
    success: bool
    decision: DecisionOut
    timestamp: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    geminiConfigured: bool


class SportOut(BaseModel):
    id: str
    name: str
    decisions: List[str]


class SportsResponse(BaseModel):
    sports: List[SportOut]


def get_pipeline(request: Request) -> AnalysisPipeline:
    return request.app.state.pipeline


def _error(status_code: int, message: str, details: Optional[str] = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)

def _upload_path(uploads_dir: Path, original_name: str) -> str:
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
    return str(Path(uploads_dir) / f"video-{suffix}{Path(original_name).suffix}")

def _save_upload(upload: UploadFile, path: str, max_bytes: int) -> int:
    written = 0
    with open(path, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise UploadTooLargeError(max_bytes)
            out.write(chunk)
    return written

@router.post("/upload-video", response_model=UploadResponse)
def upload_video(
    video: Optional[UploadFile] = File(None),
    sport: Optional[str] = Form(None),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    if video is None or not video.filename:
        return _error(400, "No video file uploaded")

    if video.content_type not in ALLOWED_VIDEO_MIMES:
        video.file.close()
        return _error(400, "Invalid file type. Only video files are allowed.")

    settings = get_settings()
    sport = normalize_sport(sport)
    video_path = _upload_path(settings.uploads_dir, video.filename)

    try:
        Path(settings.uploads_dir).mkdir(parents=True, exist_ok=True)
        size = _save_upload(video, video_path, settings.max_file_size)
        logger.info(f"Processing video: {video_path} ({format_file_size(size)}) for sport: {sport}")

        asset = VideoAsset.from_path(video_path, mime_type=video.content_type)
        decision = pipeline.analyze(asset, sport)

        return UploadResponse(
            success=True,
            decision=DecisionOut(**decision.to_dict()),
            timestamp=utc_now_iso(),
        )
    except UploadTooLargeError as e:
        return _error(413, str(e))
    except Exception as e:
        logger.exception(f"Error processing video: {e}")
        return _error(500, "Failed to process video", details=str(e))
    finally:
        video.file.close()
        if os.path.exists(video_path):
            os.remove(video_path)

@router.get("/health", response_model=HealthResponse)
def health_check(pipeline: AnalysisPipeline = Depends(get_pipeline)):
    return HealthResponse(
        status="healthy",
        timestamp=utc_now_iso(),
        geminiConfigured=pipeline.model_client.is_configured,
    )

@router.get("/sports", response_model=SportsResponse)
def list_sports():
    sports = []
    for sport_id in available_sports():
        profile = profile_for(sport_id)
        sports.append(SportOut(id=profile.sport_id, name=profile.name, decisions=list(profile.decisions)))
    return SportsResponse(sports=sports)
