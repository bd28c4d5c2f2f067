"""
FaceLandmarker model asset
Downloads the MediaPipe Tasks model on first use
"""

import logging
import os
import ssl
import urllib.request

from .config import FACE_LANDMARKER_TASK_URL

logger = logging.getLogger(__name__)


def ensure_face_landmarker_task(model_path: str, url: str = FACE_LANDMARKER_TASK_URL, timeout_s: int = 30) -> str:
    """
    Ensure `face_landmarker.task` exists at `model_path`.

    If missing, downloads it from the official MediaPipe model bucket.

    Raises:
        RuntimeError: download failed; a partial file is removed first
    """
    if os.path.exists(model_path):
        return model_path

    os.makedirs(os.path.dirname(model_path) or ".", exist_ok=True)
    logger.info(f"Downloading FaceLandmarker model to {model_path}...")

    ctx = ssl.create_default_context()
    try:
        with urllib.request.urlopen(url, context=ctx, timeout=timeout_s) as r, open(model_path, "wb") as f:
            f.write(r.read())
    except OSError as e:
        # Clean up partial downloads
        if os.path.exists(model_path):
            os.remove(model_path)
        raise RuntimeError(
            "Missing MediaPipe Tasks model file and download failed.\n\n"
            f"Expected model at: {model_path}\n"
            f"URL: {url}\n\n"
            "Download manually:\n"
            f'  mkdir -p "{os.path.dirname(model_path) or "."}"\n'
            f'  curl -L -o "{model_path}" "{url}"\n'
        ) from e

    logger.info(f"✓ FaceLandmarker model ready ({os.path.getsize(model_path)} bytes)")
    return model_path
