# utils/path_safety.py
import os
from pathlib import Path
from typing import Optional, Union

from utils.errors import InvalidInput, NotFound, PathTraversal, UnsupportedType
from utils.settings import allowed_root

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tiff", ".tif", ".heic", ".heif", ".webp", ".avif")

RootLike = Optional[Union[str, Path]]


def ensure_within_root(raw: str, root: RootLike = None) -> Path:
    """문자열 경로를 절대경로로 정규화하고 허용 루트 밖이면 거부."""
    if not raw or not isinstance(raw, str):
        raise InvalidInput("Invalid file path provided")
    if "\x00" in raw:
        raise InvalidInput("Invalid file path provided")

    if ".." in Path(os.path.normpath(raw)).parts:
        raise PathTraversal("Path traversal detected - access denied")

    base = allowed_root(str(root) if root is not None else None)
    # 상대경로는 허용 루트 기준으로 해석
    resolved = (base / raw).resolve()
    if resolved != base and base not in resolved.parents:
        raise PathTraversal("Path traversal detected - access denied")
    return resolved


def validate_image_path(raw: str, root: RootLike = None) -> Path:
    """
    사용자 입력 경로 → SafePath.
    결과를 캐시하지 않는다: 배치의 매 항목마다 다시 호출해야 한다.
    """
    resolved = ensure_within_root(raw, root)
    if not resolved.is_file():
        raise NotFound(f"File not found: {raw}")

    ext = resolved.suffix.lower()
    if ext not in IMAGE_EXTENSIONS:
        raise UnsupportedType(
            f"Unsupported file type: {ext or '(none)'}. Supported types: {', '.join(IMAGE_EXTENSIONS)}"
        )
    return resolved


def validate_output_path(raw: str, suffix: str, root: RootLike = None) -> Path:
    """아직 존재하지 않을 수 있는 출력 경로 검증 (확장자 + 상위 디렉토리 존재)."""
    resolved = ensure_within_root(raw, root)
    if resolved.suffix.lower() != suffix.lower():
        raise InvalidInput(f"Output path must end with {suffix} extension")
    if not resolved.parent.is_dir():
        raise NotFound(f"Output directory not found: {resolved.parent}")
    if resolved.is_dir():
        raise InvalidInput(f"Output path is a directory: {raw}")
    return resolved
