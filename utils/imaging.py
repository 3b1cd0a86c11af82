# utils/imaging.py
import os
import shutil
from pathlib import Path
from typing import List, Sequence, Tuple

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError

from schemas import StripResult
from utils.errors import ExtractionError
from utils.rename_engine import resolve_collision
from utils.settings import FULL_IMAGE_QUALITY, THUMBNAIL_QUALITY

_TAG_IDS = {name: tag for tag, name in ExifTags.TAGS.items()}


def save_thumbnail(src: Path, dest: Path, size: int, quality: int = THUMBNAIL_QUALITY) -> None:
    """size x size 안에 들어가도록 축소한 JPEG 저장 (비율 유지)."""
    with Image.open(src) as im:
        im = ImageOps.exif_transpose(im).convert("RGB")
        im.thumbnail((size, size))
        im.save(dest, format="JPEG", quality=quality, optimize=True)


def save_full_image(src: Path, dest: Path, quality: int = FULL_IMAGE_QUALITY) -> None:
    with Image.open(src) as im:
        im = ImageOps.exif_transpose(im).convert("RGB")
        im.save(dest, format="JPEG", quality=quality)


def _kept_exif(src_exif: Image.Exif, keep: Sequence[str]) -> Tuple[Image.Exif, List[str]]:
    exif = Image.Exif()
    kept: List[str] = []
    wanted = {_TAG_IDS[name]: name for name in keep if name in _TAG_IDS}
    if not wanted:
        return exif, kept

    for tag, value in src_exif.items():
        if tag in wanted and not isinstance(value, dict):
            exif[tag] = value
            kept.append(wanted[tag])

    sub = {tag: value for tag, value in src_exif.get_ifd(ExifTags.IFD.Exif).items() if tag in wanted}
    if sub:
        exif[ExifTags.IFD.Exif] = sub
        kept.extend(wanted[tag] for tag in sub)
    return exif, kept


def strip_metadata(src: Path, keep: Sequence[str] = (), backup: bool = True) -> StripResult:
    """
    EXIF/XMP/IPTC 제거 후 같은 경로에 다시 저장.
    keep에 적은 EXIF 필드(Make, Model, DateTimeOriginal ...)만 남긴다.
    backup이면 원본을 <이름>.original<확장자> 로 먼저 복사해 둔다.
    """
    backup_path = None
    tmp = src.with_name(f".{src.stem}.stripping{src.suffix}")
    try:
        if backup:
            backup_path = resolve_collision(src.parent, f"{src.stem}.original", src.suffix)
            shutil.copy2(str(src), str(backup_path))
        with Image.open(src) as im:
            fmt = im.format
            exif, kept = _kept_exif(im.getexif(), keep)
            params = {}
            if len(exif):
                params["exif"] = exif.tobytes()
            if im.info.get("icc_profile"):
                params["icc_profile"] = im.info["icc_profile"]
            if fmt == "JPEG":
                params["quality"] = "keep"
                out = im
            else:
                # TIFF 저장기는 원본 tag_v2 의 XMP/IPTC/Photoshop 태그를 옮겨 쓴다 → 태그 없는 사본으로 저장
                out = im.copy()
            for key in ("exif", "xmp", "XML:com.adobe.xmp"):
                out.info.pop(key, None)
            out.save(tmp, format=fmt, **params)
        os.replace(tmp, src)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        if tmp.exists():
            tmp.unlink()
        raise ExtractionError(f"Failed to strip metadata from {src.name}: {e}") from e

    summary = "\n".join([
        f"EXIF data stripped from {src.name}",
        f"Kept fields: {', '.join(kept) or 'none'}",
        f"Backup: {backup_path.name if backup_path else 'no'}",
    ])
    return StripResult(
        filepath=src.name,
        backup_path=str(backup_path) if backup_path else None,
        kept_fields=kept,
        summary=summary,
    )
