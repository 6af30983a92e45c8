"""
Shared pytest fixtures for the umpire service tests.

The model client and the media side of the video processor are faked so the
pipeline runs without Gemini or ffprobe. Frame workspaces, base64 encoding and
cleanup still use the real VideoProcessor code.
"""
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from app.core import config
from app.core.analysis import AnalysisPipeline
from app.core.cache import DecisionCache
from app.core.exceptions import MediaExtractionError, MissingAPIKeyError, ModelCallError
from app.core.llm import ModelRole
from app.core.video_utils import VideoAsset, VideoMetadata, VideoProcessor

DEFAULT_RESPONSES = {
    ModelRole.FULL_VIDEO: "Ball pitches outside leg, hits pad. DECISION: NOT OUT. CONFIDENCE: High",
    ModelRole.SYNTHESIS: "Both sources agree the ball pitched outside leg stump. Preliminary decision: NOT OUT.",
    ModelRole.FINAL_DECISION: (
        "DECISION: NOT OUT\n"
        "REASONING: Pitched outside leg, so LBW cannot be given OUT.\n"
        "CONFIDENCE: High\n"
        "OFFICIAL CALL: Not out!"
    ),
}


class FakeModelClient:
    """Records every call; frame calls answer "frame N evidence"."""

    def __init__(self, responses: Optional[dict] = None, fail_roles: Iterable[ModelRole] = (),
                 fail_frames: Iterable[int] = (), configured: bool = True):
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.fail_roles = set(fail_roles)
        self.fail_frames = set(fail_frames)
        self.is_configured = configured
        self.calls: List[tuple] = []

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise MissingAPIKeyError()

    def generate(self, role, prompt, media=None):
        self.calls.append((role, prompt, media))
        if role in self.fail_roles:
            raise ModelCallError(role.value, "boom")
        if role is ModelRole.FRAME_VISION:
            n = sum(1 for r, _, _ in self.calls if r is ModelRole.FRAME_VISION)
            if n in self.fail_frames:
                raise ModelCallError(role.value, f"frame {n} rejected")
            return f"frame {n} evidence"
        return self.responses[role]

    def roles_called(self) -> List[ModelRole]:
        return [role for role, _, _ in self.calls]

    def prompt_for(self, role: ModelRole) -> str:
        return next(prompt for r, prompt, _ in self.calls if r is role)


class FakeVideoProcessor(VideoProcessor):
    """Real workspace/encoding behaviour; canned metadata and dummy JPEG frames."""

    def __init__(self, temp_dir: Path, frame_count: int = 3, metadata: Optional[VideoMetadata] = None,
                 fail_metadata: bool = False):
        super().__init__(temp_dir)
        self.frame_count = frame_count
        self.fail_metadata = fail_metadata
        self.metadata = metadata or VideoMetadata(
            duration=5.0, width=1280, height=720, frame_rate=30.0,
            has_audio=True, format_name="mov,mp4,m4a,3gp,3g2,mj2", size=1024,
        )
        self.workspaces: List[Path] = []

    def get_metadata(self, video_path: str) -> VideoMetadata:
        if self.fail_metadata:
            raise MediaExtractionError("ffprobe failed")
        return self.metadata

    def extract_frames(self, video_path, output_dir, max_frames=15, interval_sec=2.0):
        self.workspaces.append(Path(output_dir))
        paths = []
        for i in range(1, min(self.frame_count, max_frames) + 1):
            frame = Path(output_dir) / f"frame_{i:03d}.jpg"
            frame.write_bytes(b"\xff\xd8fake-jpeg\xff\xd9")
            paths.append(str(frame))
        return paths


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path / "temp"


@pytest.fixture
def video_file(tmp_path) -> Path:
    path = tmp_path / "video-1700000000000-42.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 256)
    return path


@pytest.fixture
def video_asset(video_file) -> VideoAsset:
    return VideoAsset.from_path(str(video_file), mime_type="video/mp4")


@pytest.fixture
def model_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def video_processor(temp_dir) -> FakeVideoProcessor:
    return FakeVideoProcessor(temp_dir)


@pytest.fixture
def cache() -> DecisionCache:
    return DecisionCache()


@pytest.fixture
def pipeline(model_client, video_processor, cache) -> AnalysisPipeline:
    return AnalysisPipeline(model_client, video_processor, cache, max_frames=8, frame_interval_sec=2.0)


@pytest.fixture
def settings_env(tmp_path, monkeypatch):
    """Point uploads/temp at tmp_path and rebuild the Settings singleton."""
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("TEMP_DIR", str(tmp_path / "temp"))
    monkeypatch.setattr(config, "_settings", None)
    yield config.get_settings()
    monkeypatch.setattr(config, "_settings", None)
