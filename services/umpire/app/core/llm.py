import base64
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import google.generativeai as genai

from app.core.config import Settings
from app.core.exceptions import MissingAPIKeyError, ModelCallError
from app.core.video_utils import InlineMedia

logger = logging.getLogger(__name__)


class ModelRole(str, Enum):
    FRAME_VISION = "frame-vision"
    FULL_VIDEO = "full-video"
    SYNTHESIS = "synthesis"
    FINAL_DECISION = "final-decision"


@dataclass(frozen=True)
class RoleConfig:
    model_name: str
    attach_media: bool


def role_configs_from_settings(settings: Settings) -> Dict[ModelRole, RoleConfig]:
    return {
        ModelRole.FRAME_VISION: RoleConfig(settings.vision_model, attach_media=True),
        ModelRole.FULL_VIDEO: RoleConfig(settings.video_model, attach_media=True),
        ModelRole.SYNTHESIS: RoleConfig(settings.synthesis_model, attach_media=False),
        ModelRole.FINAL_DECISION: RoleConfig(settings.decision_model, attach_media=False),
    }


class GeminiStageClient:
    """
    One Gemini capability serving all four pipeline roles.

    Each role maps to a model name and says whether inline media goes with the
    prompt. GenerativeModel instances are created on first use and shared
    between roles that name the same model.
    """

    def __init__(self, api_key: str, role_configs: Dict[ModelRole, RoleConfig]):
        self.api_key = api_key
        self.role_configs = role_configs
        self._models: Dict[str, "genai.GenerativeModel"] = {}
        self._lock = threading.Lock()
        self._configured = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiStageClient":
        return cls(settings.gemini_api_key, role_configs_from_settings(settings))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise MissingAPIKeyError()

    def _get_model(self, model_name: str):
        with self._lock:
            if not self._configured:
                genai.configure(api_key=self.api_key)
                self._configured = True
            model = self._models.get(model_name)
            if model is None:
                model = genai.GenerativeModel(model_name)
                self._models[model_name] = model
                logger.info(f"Gemini {model_name} loaded ✓")
            return model

    def generate(self, role: ModelRole, prompt: str, media: Optional[InlineMedia] = None) -> str:
        """Send the prompt (plus inline media when the role takes it) and return the text."""
        self.ensure_configured()
        config = self.role_configs[role]

        contents = [prompt]
        if config.attach_media and media is not None:
            contents.append({"mime_type": media.mime_type, "data": base64.b64decode(media.data_b64)})

        try:
            response = self._get_model(config.model_name).generate_content(contents)
            text = response.text
        except Exception as e:
            raise ModelCallError(role.value, str(e)) from e

        text = (text or "").strip()
        if not text:
            raise ModelCallError(role.value, "empty response")
        return text
