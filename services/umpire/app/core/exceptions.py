"""Exception hierarchy for the umpire service."""

from typing import Optional


class UmpireError(Exception):
    """Base exception for umpire pipeline errors."""

    pass


class MissingAPIKeyError(UmpireError):
    """Raised when the Gemini credential is not configured."""

    def __init__(self, env_var: str = "GEMINI_API_KEY"):
        super().__init__(f"Gemini API key not found. Set the {env_var} environment variable.")
        self.env_var = env_var


class MediaExtractionError(UmpireError):
    """Raised when ffprobe/OpenCV cannot read the uploaded video."""

    pass


class ModelCallError(UmpireError):
    """Raised when a Gemini call fails or returns no text."""

    def __init__(self, role: str, message: str):
        super().__init__(f"{role} call failed: {message}")
        self.role = role


class StageError(UmpireError):
    """Raised when a pipeline stage fails; wraps the underlying error."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(f"{stage} failed: {detail}")
        self.stage = stage
        self.cause = cause


class PipelineStateError(UmpireError):
    """Raised on an illegal pipeline state transition."""

    pass


class UploadTooLargeError(UmpireError):
    """Raised when an upload exceeds MAX_FILE_SIZE."""

    def __init__(self, limit_bytes: int):
        super().__init__(f"File too large. Maximum size is {limit_bytes // (1024 * 1024)}MB.")
        self.limit_bytes = limit_bytes
