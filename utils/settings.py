# utils/settings.py
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))

# ---------- 서버 설정 ---------- .env
SERVER_NAME = os.getenv("EXIF_MCP_NAME", "exif-mcp")
LOG_LEVEL = os.getenv("EXIF_MCP_LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("EXIF_MCP_LOG_DIR") or None

# ---------- 이미지/리네임 ----------
THUMBNAIL_QUALITY = int(os.getenv("THUMBNAIL_QUALITY", "85"))
FULL_IMAGE_QUALITY = int(os.getenv("FULL_IMAGE_QUALITY", "90"))
MAX_COLLISION_ATTEMPTS = int(os.getenv("MAX_COLLISION_ATTEMPTS", "1000"))


def allowed_root(root: Optional[str] = None) -> Path:
    """접근 허용 루트. 인자 > EXIF_MCP_ROOT > 현재 작업 디렉토리 순."""
    raw = root or os.getenv("EXIF_MCP_ROOT") or os.getcwd()
    return Path(raw).resolve()
