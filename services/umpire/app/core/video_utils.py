import os
import json
import time
import uuid
import base64
import shutil
import logging
import mimetypes
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import cv2

from app.core.exceptions import MediaExtractionError

logger = logging.getLogger(__name__)

DEFAULT_FRAME_RATE = 30.0
DEFAULT_VIDEO_MIME = "video/mp4"
FRAME_MAX_WIDTH = 640
FFPROBE_TIMEOUT = 60


@dataclass(frozen=True)
class VideoAsset:
    """An uploaded video on disk, valid for the duration of one request."""
    path: str
    mime_type: str
    size_bytes: int

    @classmethod
    def from_path(cls, path: str, mime_type: Optional[str] = None) -> "VideoAsset":
        if not mime_type:
            mime_type = mimetypes.guess_type(path)[0] or DEFAULT_VIDEO_MIME
        return cls(path=str(path), mime_type=mime_type, size_bytes=os.path.getsize(path))


@dataclass(frozen=True)
class VideoMetadata:
    duration: float
    width: Optional[int]
    height: Optional[int]
    frame_rate: float
    has_audio: bool
    format_name: str
    size: int


@dataclass(frozen=True)
class InlineMedia:
    """Base64 payload sent inline with a model prompt."""
    data_b64: str
    mime_type: str

    @property
    def size_mb(self) -> float:
        return len(self.data_b64) / (1024 * 1024)


def parse_frame_rate(value: Optional[str]) -> float:
    """Parse ffprobe's r_frame_rate ("30000/1001", "25") with a 30 fps fallback."""
    if not value:
        return DEFAULT_FRAME_RATE
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            rate = float(num) / float(den)
        else:
            rate = float(value)
    except (ValueError, ZeroDivisionError):
        return DEFAULT_FRAME_RATE
    return rate if rate > 0 else DEFAULT_FRAME_RATE


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_probe_output(probe: dict) -> VideoMetadata:
    fmt = probe.get("format", {})
    streams = probe.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

    return VideoMetadata(
        duration=max(0.0, _as_float(fmt.get("duration"))),
        width=video.get("width") if video else None,
        height=video.get("height") if video else None,
        frame_rate=parse_frame_rate(video.get("r_frame_rate") if video else None),
        has_audio=audio is not None,
        format_name=fmt.get("format_name", ""),
        size=int(_as_float(fmt.get("size"))),
    )


class VideoProcessor:
    """
    Wraps ffprobe and OpenCV for the pipeline:
      - technical metadata (duration, resolution, fps, audio presence)
      - frames sampled at a fixed time interval into a scoped temp directory
      - base64 payloads for inline model input
    """

    def __init__(self, temp_dir: Path, inline_warn_mb: float = 20.0):
        self.temp_dir = Path(temp_dir)
        self.inline_warn_mb = inline_warn_mb

    # ── Metadata ──────────────────────────────────────────────────────────────
    def get_metadata(self, video_path: str) -> VideoMetadata:
        cmd = [
            "ffprobe", "-v", "error",
            "-print_format", "json",
            "-show_format", "-show_streams",
            video_path,
        ]
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=FFPROBE_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise MediaExtractionError(f"ffprobe could not run: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="ignore").strip()
            raise MediaExtractionError(f"ffprobe failed for {video_path}: {stderr}")

        try:
            probe = json.loads(result.stdout.decode("utf-8", errors="ignore") or "{}")
        except json.JSONDecodeError as e:
            raise MediaExtractionError(f"ffprobe returned invalid JSON: {e}") from e

        return parse_probe_output(probe)

    # ── Frames ────────────────────────────────────────────────────────────────
    @contextmanager
    def frame_workspace(self) -> Iterator[Path]:
        """Fresh frames_<uuid> directory, removed when the block exits."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        output_dir = self.temp_dir / f"frames_{uuid.uuid4().hex}"
        output_dir.mkdir()
        try:
            yield output_dir
        finally:
            shutil.rmtree(output_dir, ignore_errors=True)
            logger.debug(f"Removed frame directory {output_dir}")

    def extract_frames(self, video_path: str, output_dir: Path, max_frames: int = 15,
                       interval_sec: float = 2.0) -> List[str]:
        """
        Sample one frame every `interval_sec` seconds (first frame at t=0), at
        most `max_frames`, downscaled to FRAME_MAX_WIDTH and saved as JPEG.
        Returns the frame paths in time order.
        """
        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            raise MediaExtractionError(f"Cannot open video: {video_path}")

        try:
            fps = cap.get(cv2.CAP_PROP_FPS) or DEFAULT_FRAME_RATE
            total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
            frame_step = max(1, int(round(fps * interval_sec)))

            paths: List[str] = []
            frame_num = 0
            while len(paths) < max_frames:
                if total_frames > 0 and frame_num >= total_frames:
                    break
                cap.set(cv2.CAP_PROP_POS_FRAMES, frame_num)
                ret, frame = cap.read()
                if not ret:
                    break

                h, w = frame.shape[:2]
                if w > FRAME_MAX_WIDTH:
                    scale = FRAME_MAX_WIDTH / w
                    frame = cv2.resize(frame, (FRAME_MAX_WIDTH, int(h * scale)))

                frame_path = str(Path(output_dir) / f"frame_{len(paths) + 1:03d}.jpg")
                if not cv2.imwrite(frame_path, frame, [cv2.IMWRITE_JPEG_QUALITY, 90]):
                    raise MediaExtractionError(f"Could not write frame {frame_path}")
                paths.append(frame_path)
                frame_num += frame_step
        finally:
            cap.release()

        logger.info(f"Extracted {len(paths)} frames from video")
        return paths

    # ── Base64 payloads ───────────────────────────────────────────────────────
    @staticmethod
    def frame_to_base64(frame_path: str) -> str:
        with open(frame_path, "rb") as f:
            return base64.b64encode(f.read()).decode("ascii")

    def frame_media(self, frame_path: str) -> InlineMedia:
        return InlineMedia(data_b64=self.frame_to_base64(frame_path), mime_type="image/jpeg")

    def encode_video(self, video: VideoAsset) -> InlineMedia:
        with open(video.path, "rb") as f:
            raw = f.read()
        media = InlineMedia(data_b64=base64.b64encode(raw).decode("ascii"), mime_type=video.mime_type)

        raw_mb = len(raw) / (1024 * 1024)
        logger.info(f"Prepared video {os.path.basename(video.path)}: {raw_mb:.2f}MB raw, {media.size_mb:.2f}MB base64")
        if media.size_mb > self.inline_warn_mb:
            logger.warning(f"Large inline video ({media.size_mb:.1f}MB base64) might affect processing")
        return media


# ── Filesystem housekeeping ───────────────────────────────────────────────────
def ensure_directories(*dirs: Path) -> None:
    for d in dirs:
        Path(d).mkdir(parents=True, exist_ok=True)


def _remove_older_than(directory: Path, max_age_sec: float, now: float) -> int:
    removed = 0
    if not directory.exists():
        return removed
    for entry in directory.iterdir():
        try:
            if now - entry.stat().st_mtime <= max_age_sec:
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
            logger.info(f"Cleaned up: {entry}")
        except OSError as e:
            logger.error(f"Cleanup of {entry} failed: {e}")
    return removed


def cleanup_stale_files(temp_dir: Path, uploads_dir: Path, now: Optional[float] = None) -> int:
    """Remove temp entries older than 1h and uploads older than 2h. Returns the count removed."""
    now = time.time() if now is None else now
    removed = _remove_older_than(Path(temp_dir), 60 * 60, now)
    removed += _remove_older_than(Path(uploads_dir), 2 * 60 * 60, now)
    return removed


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    size = float(num_bytes)
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2):g} {units[i]}"
