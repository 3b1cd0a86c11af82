# utils/log.py
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from utils.settings import LOG_DIR, LOG_LEVEL


def init_logging(level: str = LOG_LEVEL, log_dir: Optional[str] = LOG_DIR) -> None:
    """stderr 로깅 초기화. stdout은 MCP stdio 전송로이므로 절대 쓰지 않는다."""
    logger.remove()
    logger.add(sys.stderr, level=level, backtrace=False, diagnose=False)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path / "exif_mcp_{time:YYYYMMDD}.log"),
            rotation="10 MB",
            retention="10 days",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            level=level,
        )
