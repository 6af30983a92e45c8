import os
from pathlib import Path
from typing import Final, Optional

from dotenv import load_dotenv

load_dotenv()

# services/umpire/
BASE_DIR = Path(__file__).resolve().parent.parent.parent

ALLOWED_VIDEO_MIMES = (
    "video/mp4",
    "video/avi",
    "video/mov",
    "video/wmv",
    "video/quicktime",
)


class Settings:
    """
    Service settings loaded from environment variables.

    Everything the umpire service reads from the environment lives here so the
    pipeline and the HTTP layer never call os.getenv themselves.
    """

    def __init__(self) -> None:
        # Gemini
        self.gemini_api_key: Final[str] = os.getenv("GEMINI_API_KEY", "")
        self.vision_model: Final[str] = os.getenv("GEMINI_VISION_MODEL", "gemini-2.0-flash")
        self.video_model: Final[str] = os.getenv("GEMINI_VIDEO_MODEL", "gemini-2.5-pro")
        self.synthesis_model: Final[str] = os.getenv("GEMINI_SYNTHESIS_MODEL", "gemini-2.5-pro")
        self.decision_model: Final[str] = os.getenv("GEMINI_DECISION_MODEL", "gemini-2.0-flash")

        # Server
        self.port: Final[int] = int(os.getenv("PORT", "3000"))
        self.log_level: Final[str] = os.getenv("LOG_LEVEL", "info")
        self.log_file: Final[str] = os.getenv("LOG_FILE", "")

        # Upload / processing limits
        self.max_file_size: Final[int] = int(os.getenv("MAX_FILE_SIZE", str(100 * 1024 * 1024)))
        self.max_processing_time: Final[float] = float(os.getenv("MAX_PROCESSING_TIME", "300"))

        # Storage
        self.uploads_dir: Final[Path] = Path(os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads")))
        self.temp_dir: Final[Path] = Path(os.getenv("TEMP_DIR", str(BASE_DIR / "temp")))
        self.public_dir: Final[Path] = BASE_DIR / "public"

        # Media extraction
        self.vision_max_frames: Final[int] = int(os.getenv("VISION_MAX_FRAMES", "8"))
        self.frame_interval_sec: Final[float] = float(os.getenv("FRAME_INTERVAL_SEC", "2.0"))
        self.inline_warn_mb: Final[float] = float(os.getenv("INLINE_WARN_MB", "20"))

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide Settings, created on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
