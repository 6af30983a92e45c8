import sys
import json
import logging
from pathlib import Path

from app.core.config import get_settings
from app.core.video_utils import VideoAsset
from main import build_pipeline

logging.basicConfig(level=logging.INFO)

# usage: python debug_run.py [video_path] [sport]
if len(sys.argv) > 1:
    videos = [Path(sys.argv[1])]
else:
    videos = list(get_settings().uploads_dir.glob("*.mp4")) + list(Path("../../uploads").glob("*.mp4"))
sport = sys.argv[2] if len(sys.argv) > 2 else "general"
print("Videos found:", videos)

if videos:
    try:
        pipeline = build_pipeline(get_settings())
        decision = pipeline.analyze(VideoAsset.from_path(str(videos[0])), sport)
        print(json.dumps(decision.to_dict(), indent=2))
    except Exception:
        import traceback
        traceback.print_exc()
        sys.exit(1)
else:
    print("No video found")
