import time
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from app.core.cache import DecisionCache
from app.core.config import Settings
from app.core.decision import Decision
from app.core.exceptions import PipelineStateError, StageError
from app.core.llm import ModelRole
from app.core.prompts import (
    final_decision_prompt,
    frame_vision_prompt,
    frames_summary,
    full_video_prompt,
    synthesis_prompt,
)
from app.core.sports_rules import SportProfile, format_for_prompt, normalize_sport, profile_for
from app.core.video_utils import VideoAsset, VideoMetadata

logger = logging.getLogger(__name__)

FRAME_FAILED_TEXT = "Frame analysis failed"


# ── Run state ─────────────────────────────────────────────────────────────────
class PipelineState(str, Enum):
    IDLE = "idle"
    METADATA_FETCHED = "metadata_fetched"
    FRAMES_EXTRACTED = "frames_extracted"
    VISION_ANALYZED = "vision_analyzed"
    VIDEO_ANALYZED = "video_analyzed"
    RULES_SYNTHESIZED = "rules_synthesized"
    DECIDED = "decided"
    CLEANED = "cleaned"
    FAILED = "failed"


_STATE_ORDER = [
    PipelineState.IDLE,
    PipelineState.METADATA_FETCHED,
    PipelineState.FRAMES_EXTRACTED,
    PipelineState.VISION_ANALYZED,
    PipelineState.VIDEO_ANALYZED,
    PipelineState.RULES_SYNTHESIZED,
    PipelineState.DECIDED,
    PipelineState.CLEANED,
]


class PipelineRun:
    """Per-request state machine. Moves one step forward at a time; FAILED and CLEANED are terminal."""

    def __init__(self, key: str):
        self.key = key
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [self.state]

    def advance(self, state: PipelineState) -> None:
        if self.state in (PipelineState.FAILED, PipelineState.CLEANED):
            raise PipelineStateError(f"{self.key}: run already {self.state.value}")
        if state is not PipelineState.FAILED:
            expected = _STATE_ORDER[_STATE_ORDER.index(self.state) + 1]
            if state is not expected:
                raise PipelineStateError(f"{self.key}: cannot move {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self) -> None:
        if self.state is not PipelineState.FAILED:
            self.advance(PipelineState.FAILED)


@dataclass(frozen=True)
class FrameAnalysis:
    index: int
    text: str
    frame_path: str
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


# ── Pipeline ──────────────────────────────────────────────────────────────────
class AnalysisPipeline:
    """
    Four-stage AI umpire.

    HOW IT WORKS
    ============
    0. ffprobe metadata, base64 video payload, up to `max_frames` frames sampled
       every `frame_interval_sec` seconds into a scoped temp directory.
    1. Frame vision: each frame analysed on its own, in index order. A failed
       frame becomes a placeholder instead of failing the request.
    2. Full video: the whole clip inline, with a start/middle/end timeline prompt.
    3. Synthesis: frame notes + video analysis + the sport's rule text.
    4. Final decision: synthesis + duration -> decisive call, parsed into a
       Decision (confidence + final call token).

    Stages run strictly in sequence because each prompt embeds the previous
    stage's text. Any failure outside Stage 1 aborts the request as a
    StageError. Decisions are cached per (upload name, sport); a cache hit
    makes no model calls at all.
    """

    def __init__(self, model_client, video_processor, cache: DecisionCache,
                 max_frames: int = 8, frame_interval_sec: float = 2.0,
                 max_processing_time: Optional[float] = None):
        self.model_client = model_client
        self.video_processor = video_processor
        self.cache = cache
        self.max_frames = max_frames
        self.frame_interval_sec = frame_interval_sec
        self.max_processing_time = max_processing_time

    @classmethod
    def from_settings(cls, settings: Settings, model_client, video_processor,
                      cache: DecisionCache) -> "AnalysisPipeline":
        return cls(
            model_client,
            video_processor,
            cache,
            max_frames=settings.vision_max_frames,
            frame_interval_sec=settings.frame_interval_sec,
            max_processing_time=settings.max_processing_time,
        )

    def analyze(self, video: VideoAsset, sport: Optional[str] = "general") -> Decision:
        sport = normalize_sport(sport)
        key = self.cache.make_key(video.path, sport)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Using cached analysis for {key}")
            return cached

        self.model_client.ensure_configured()
        profile = profile_for(sport)
        run = PipelineRun(key)
        started = time.monotonic()
        logger.info(f"Starting umpire analysis: {key} (profile={profile.sport_id})")

        try:
            with self.video_processor.frame_workspace() as frames_dir:
                decision = self._run_stages(run, video, sport, profile, frames_dir)
        except Exception:
            run.fail()
            logger.error(f"Umpire analysis failed: {key} after {run.history[-2].value}")
            raise
        run.advance(PipelineState.CLEANED)

        self.cache.put(key, decision)

        elapsed = time.monotonic() - started
        if self.max_processing_time and elapsed > self.max_processing_time:
            logger.warning(f"Analysis of {key} took {elapsed:.1f}s (advisory limit {self.max_processing_time:.0f}s)")
        logger.info(f"Done: {key} -> {decision.final_call} ({decision.confidence}) in {elapsed:.1f}s")
        return decision

    def _run_stages(self, run: PipelineRun, video: VideoAsset, sport: str,
                    profile: SportProfile, frames_dir: Path) -> Decision:
        # Stage 0: metadata, inline payload, frames
        metadata: VideoMetadata = self._stage("metadata", self.video_processor.get_metadata, video.path)
        logger.info(f"Video metadata: {metadata.duration}s, {metadata.width}x{metadata.height}")
        video_media = self._stage("video preparation", self.video_processor.encode_video, video)
        run.advance(PipelineState.METADATA_FETCHED)

        frame_paths = self._stage(
            "frame extraction",
            self.video_processor.extract_frames,
            video.path, frames_dir, self.max_frames, self.frame_interval_sec,
        )
        run.advance(PipelineState.FRAMES_EXTRACTED)

        # Stage 1: frame vision
        logger.info(f"Stage 1: frame vision on {len(frame_paths)} frames...")
        frame_analyses = self.analyze_frames(profile, frame_paths)
        failed = sum(1 for fa in frame_analyses if fa.failed)
        if failed:
            logger.warning(f"{failed}/{len(frame_analyses)} frame analyses failed, continuing with partial evidence")
        run.advance(PipelineState.VISION_ANALYZED)

        # Stage 2: full video
        logger.info("Stage 2: full video analysis...")
        video_analysis = self._stage(
            "full video analysis",
            self.model_client.generate, ModelRole.FULL_VIDEO, full_video_prompt(profile), video_media,
        )
        logger.debug(f"Video analysis:\n{video_analysis}")
        run.advance(PipelineState.VIDEO_ANALYZED)

        # Stage 3: rule-grounded synthesis
        logger.info("Stage 3: applying rules...")
        summary = frames_summary([(fa.index, fa.text) for fa in frame_analyses])
        synthesis = self._stage(
            "rule synthesis",
            self.model_client.generate,
            ModelRole.SYNTHESIS, synthesis_prompt(profile, summary, video_analysis, format_for_prompt(sport)),
        )
        run.advance(PipelineState.RULES_SYNTHESIZED)

        # Stage 4: final call
        logger.info("Stage 4: final umpire decision...")
        decision_text = self._stage(
            "final decision",
            self.model_client.generate,
            ModelRole.FINAL_DECISION, final_decision_prompt(profile, synthesis, metadata.duration),
        )
        logger.debug(f"Final decision:\n{decision_text}")

        decision = Decision.from_text(decision_text, sport, metadata.duration, metadata.has_audio)
        logger.info(f"Extracted confidence={decision.confidence} final_call={decision.final_call}")
        run.advance(PipelineState.DECIDED)
        return decision

    def analyze_frames(self, profile: SportProfile, frame_paths: List[str]) -> List[FrameAnalysis]:
        total = len(frame_paths)
        return [self._analyze_frame(profile, index, path, total) for index, path in enumerate(frame_paths, 1)]

    def _analyze_frame(self, profile: SportProfile, index: int, frame_path: str, total: int) -> FrameAnalysis:
        try:
            media = self.video_processor.frame_media(frame_path)
            text = self.model_client.generate(
                ModelRole.FRAME_VISION, frame_vision_prompt(profile, index, total), media
            )
        except Exception as e:
            logger.warning(f"Frame {index}/{total} analysis failed: {e}")
            return FrameAnalysis(index=index, text=FRAME_FAILED_TEXT, frame_path=frame_path, error=str(e))
        logger.info(f"✓ Analyzed frame {index}/{total}")
        return FrameAnalysis(index=index, text=text, frame_path=frame_path)

    @staticmethod
    def _stage(name: str, fn: Callable, *args):
        try:
            result = fn(*args)
        except Exception as e:
            logger.exception(f"{name} failed: {e}")
            raise StageError(name, e) from e
        logger.info(f"✓ {name}")
        return result
