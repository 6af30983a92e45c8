import json
import logging
import os
import subprocess
from types import SimpleNamespace
from unittest import mock

import cv2
import numpy as np
import pytest

from app.core.exceptions import MediaExtractionError
from app.core.video_utils import (
    VideoAsset,
    VideoProcessor,
    cleanup_stale_files,
    format_file_size,
    parse_frame_rate,
    parse_probe_output,
)

PROBE = {
    "format": {"duration": "12.480000", "format_name": "mov,mp4,m4a,3gp,3g2,mj2", "size": "2048"},
    "streams": [
        {"codec_type": "video", "width": 1920, "height": 1080, "r_frame_rate": "30000/1001"},
        {"codec_type": "audio", "sample_rate": "44100"},
    ],
}


def _write_clip(path, frames=50, fps=10.0, size=(800, 600)):
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, size)
    if not writer.isOpened():
        pytest.skip("OpenCV build has no MJPG writer")
    for i in range(frames):
        frame = np.full((size[1], size[0], 3), i * 5 % 255, dtype=np.uint8)
        writer.write(frame)
    writer.release()


class TestParsing:
    @pytest.mark.parametrize(
        "value, expected",
        [("25", 25.0), ("30000/1001", 30000 / 1001), ("0/0", 30.0), ("abc", 30.0), (None, 30.0), ("0", 30.0)],
    )
    def test_parse_frame_rate(self, value, expected):
        assert parse_frame_rate(value) == pytest.approx(expected)

    def test_parse_probe_output(self):
        meta = parse_probe_output(PROBE)
        assert meta.duration == pytest.approx(12.48)
        assert (meta.width, meta.height) == (1920, 1080)
        assert meta.frame_rate == pytest.approx(29.97, rel=1e-3)
        assert meta.has_audio is True
        assert meta.size == 2048

    def test_video_without_audio_or_duration(self):
        meta = parse_probe_output({"format": {}, "streams": [{"codec_type": "video", "width": 640, "height": 360}]})
        assert meta.has_audio is False
        assert meta.duration == 0.0
        assert meta.frame_rate == 30.0

    def test_empty_probe(self):
        meta = parse_probe_output({})
        assert meta.width is None
        assert meta.has_audio is False


class TestGetMetadata:
    def _run_result(self, returncode=0, stdout=b"", stderr=b""):
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    def test_success(self, temp_dir):
        result = self._run_result(stdout=json.dumps(PROBE).encode())
        with mock.patch("app.core.video_utils.subprocess.run", return_value=result) as run:
            meta = VideoProcessor(temp_dir).get_metadata("clip.mp4")
        assert run.call_args[0][0][0] == "ffprobe"
        assert run.call_args[0][0][-1] == "clip.mp4"
        assert meta.has_audio is True

    def test_non_zero_exit(self, temp_dir):
        result = self._run_result(returncode=1, stderr=b"clip.mp4: Invalid data found")
        with mock.patch("app.core.video_utils.subprocess.run", return_value=result):
            with pytest.raises(MediaExtractionError, match="Invalid data"):
                VideoProcessor(temp_dir).get_metadata("clip.mp4")

    def test_ffprobe_missing(self, temp_dir):
        with mock.patch("app.core.video_utils.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(MediaExtractionError):
                VideoProcessor(temp_dir).get_metadata("clip.mp4")

    def test_timeout(self, temp_dir):
        with mock.patch("app.core.video_utils.subprocess.run",
                        side_effect=subprocess.TimeoutExpired("ffprobe", 60)):
            with pytest.raises(MediaExtractionError):
                VideoProcessor(temp_dir).get_metadata("clip.mp4")

    def test_invalid_json(self, temp_dir):
        with mock.patch("app.core.video_utils.subprocess.run", return_value=self._run_result(stdout=b"{not json")):
            with pytest.raises(MediaExtractionError):
                VideoProcessor(temp_dir).get_metadata("clip.mp4")


class TestFrameWorkspace:
    def test_created_and_removed(self, temp_dir):
        processor = VideoProcessor(temp_dir)
        with processor.frame_workspace() as frames_dir:
            assert frames_dir.is_dir()
            assert frames_dir.parent == temp_dir
            assert frames_dir.name.startswith("frames_")
            (frames_dir / "frame_001.jpg").write_bytes(b"x")
        assert not frames_dir.exists()

    def test_removed_when_block_raises(self, temp_dir):
        processor = VideoProcessor(temp_dir)
        with pytest.raises(RuntimeError):
            with processor.frame_workspace() as frames_dir:
                raise RuntimeError("stage failed")
        assert not frames_dir.exists()

    def test_unique_per_call(self, temp_dir):
        processor = VideoProcessor(temp_dir)
        with processor.frame_workspace() as first, processor.frame_workspace() as second:
            assert first != second


class TestExtractFrames:
    def test_samples_by_interval_and_downscales(self, tmp_path, temp_dir):
        clip = tmp_path / "clip.avi"
        _write_clip(clip, frames=50, fps=10.0)
        processor = VideoProcessor(temp_dir)

        with processor.frame_workspace() as frames_dir:
            paths = processor.extract_frames(str(clip), frames_dir, max_frames=15, interval_sec=1.0)
            assert [os.path.basename(p) for p in paths] == [f"frame_00{i}.jpg" for i in range(1, 6)]
            frame = cv2.imread(paths[0])
            assert frame.shape[1] == 640
            assert frame.shape[0] == 480

    def test_respects_max_frames(self, tmp_path, temp_dir):
        clip = tmp_path / "clip.avi"
        _write_clip(clip, frames=50, fps=10.0)
        processor = VideoProcessor(temp_dir)

        with processor.frame_workspace() as frames_dir:
            assert len(processor.extract_frames(str(clip), frames_dir, max_frames=3, interval_sec=1.0)) == 3

    def test_unreadable_video(self, tmp_path, temp_dir):
        bogus = tmp_path / "notes.mp4"
        bogus.write_text("not a video")
        processor = VideoProcessor(temp_dir)
        with processor.frame_workspace() as frames_dir:
            with pytest.raises(MediaExtractionError):
                processor.extract_frames(str(bogus), frames_dir)


class TestEncoding:
    def test_frame_media(self, tmp_path, temp_dir):
        frame = tmp_path / "frame_001.jpg"
        frame.write_bytes(b"abc")
        media = VideoProcessor(temp_dir).frame_media(str(frame))
        assert media.mime_type == "image/jpeg"
        assert media.data_b64 == "YWJj"

    def test_encode_video_keeps_declared_mime(self, video_asset, temp_dir):
        media = VideoProcessor(temp_dir).encode_video(video_asset)
        assert media.mime_type == "video/mp4"

    def test_large_video_warns(self, video_asset, temp_dir, caplog):
        processor = VideoProcessor(temp_dir, inline_warn_mb=0.0001)
        with caplog.at_level(logging.WARNING, logger="app.core.video_utils"):
            processor.encode_video(video_asset)
        assert "Large inline video" in caplog.text

    def test_small_video_does_not_warn(self, video_asset, temp_dir, caplog):
        with caplog.at_level(logging.WARNING, logger="app.core.video_utils"):
            VideoProcessor(temp_dir).encode_video(video_asset)
        assert "Large inline video" not in caplog.text


class TestVideoAsset:
    def test_mime_from_extension(self, tmp_path):
        path = tmp_path / "clip.webm"
        path.write_bytes(b"1234")
        asset = VideoAsset.from_path(str(path))
        assert asset.mime_type == "video/webm"
        assert asset.size_bytes == 4

    def test_unknown_extension_defaults_to_mp4(self, tmp_path):
        path = tmp_path / "clip.unknownext"
        path.write_bytes(b"")
        assert VideoAsset.from_path(str(path)).mime_type == "video/mp4"

    def test_declared_mime_wins(self, tmp_path):
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"")
        assert VideoAsset.from_path(str(path), mime_type="video/quicktime").mime_type == "video/quicktime"


def test_cleanup_stale_files(tmp_path):
    temp_dir, uploads_dir = tmp_path / "temp", tmp_path / "uploads"
    temp_dir.mkdir()
    uploads_dir.mkdir()
    now = 1_700_000_000.0

    old_frames = temp_dir / "frames_old"
    old_frames.mkdir()
    fresh_frames = temp_dir / "frames_new"
    fresh_frames.mkdir()
    os.utime(old_frames, (now - 2 * 3600, now - 2 * 3600))
    os.utime(fresh_frames, (now - 60, now - 60))

    old_upload = uploads_dir / "video-1.mp4"
    old_upload.write_bytes(b"x")
    recent_upload = uploads_dir / "video-2.mp4"
    recent_upload.write_bytes(b"x")
    os.utime(old_upload, (now - 3 * 3600, now - 3 * 3600))
    os.utime(recent_upload, (now - 90 * 60, now - 90 * 60))

    assert cleanup_stale_files(temp_dir, uploads_dir, now=now) == 2
    assert not old_frames.exists()
    assert fresh_frames.exists()
    assert not old_upload.exists()
    assert recent_upload.exists()


def test_cleanup_missing_directories(tmp_path):
    assert cleanup_stale_files(tmp_path / "a", tmp_path / "b") == 0


@pytest.mark.parametrize(
    "num_bytes, expected",
    [(0, "0 Bytes"), (512, "512 Bytes"), (1536, "1.5 KB"), (1024 * 1024, "1 MB"), (5 * 1024 ** 3, "5 GB")],
)
def test_format_file_size(num_bytes, expected):
    assert format_file_size(num_bytes) == expected
