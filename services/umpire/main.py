import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
import uvicorn

from app.api.routes import router as api_router
from app.core.analysis import AnalysisPipeline
from app.core.cache import DecisionCache
from app.core.config import Settings, get_settings
from app.core.llm import GeminiStageClient
from app.core.video_utils import VideoProcessor, cleanup_stale_files, ensure_directories

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if settings.log_file:
        root = logging.getLogger()
        path = os.path.abspath(settings.log_file)
        # lifespan runs again on reload / repeated TestClient startups
        if any(isinstance(h, logging.FileHandler) and h.baseFilename == path for h in root.handlers):
            return
        handler = logging.FileHandler(path)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def build_pipeline(settings: Settings) -> AnalysisPipeline:
    """Wire the model client, video processor and a fresh decision cache."""
    return AnalysisPipeline.from_settings(
        settings,
        model_client=GeminiStageClient.from_settings(settings),
        video_processor=VideoProcessor(settings.temp_dir, inline_warn_mb=settings.inline_warn_mb),
        cache=DecisionCache(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    ensure_directories(settings.uploads_dir, settings.temp_dir)
    cleanup_stale_files(settings.temp_dir, settings.uploads_dir)

    app.state.pipeline = build_pipeline(settings)
    if not settings.gemini_configured:
        logger.warning("GEMINI_API_KEY not found in environment variables - analysis requests will fail")
    logger.info(f"AI Umpire service ready on port {settings.port}")

    yield

    logger.info("Shutting down, cleaning temporary files")
    cleanup_stale_files(settings.temp_dir, settings.uploads_dir)


app = FastAPI(title="AI Umpire Service", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/")
def index():
    page = get_settings().public_dir / "index.html"
    if not page.exists():
        return JSONResponse(status_code=404, content={"error": "UI not found"})
    return FileResponse(page)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=get_settings().port)
