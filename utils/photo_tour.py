# utils/photo_tour.py
import shutil
import tempfile
import zipfile
import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from loguru import logger
from PIL import Image

from schemas import MetadataRecord, ParseOptions, PhotoTourEntry, TourResult
from utils.errors import ExifToolError, InvalidInput, PackagingError
from utils.exif_geo import extract_metadata, format_timestamp
from utils.imaging import save_full_image, save_thumbnail
from utils.kml import build_kml
from utils.path_safety import RootLike, validate_image_path, validate_output_path

Extractor = Callable[[Path, ParseOptions], Optional[MetadataRecord]]

TOUR_FIELDS = ParseOptions(
    gps=True, xmp=False, iptc=False, thumbnail=False, icc=False,
    pick=["DateTimeOriginal", "CreateDate", "Make", "Model", "LensModel"],
)
DEFAULT_TITLE = "My Photo Journey"
DEFAULT_THUMBNAIL_SIZE = 800
MIN_THUMBNAIL_SIZE, MAX_THUMBNAIL_SIZE = 16, 4096
NO_GPS_MESSAGE = "No photos with GPS data found in the provided files."
TIMELINE_PREVIEW = 5


@dataclass
class _Candidate:
    path: Path
    record: MetadataRecord
    taken_at: dt.datetime


def collect_candidates(filepaths: Sequence[str], root: RootLike = None,
                       extractor: Extractor = extract_metadata) -> List[_Candidate]:
    """GPS(위도+경도)가 있는 사진만. 실패한 파일은 투어에서 조용히 빠진다 (로그만 남김)."""
    out: List[_Candidate] = []
    for raw in filepaths:
        try:
            safe = validate_image_path(raw, root)
            record = extractor(safe, TOUR_FIELDS)
        except ExifToolError as e:
            logger.warning("tour: skipping {}: {}", raw, e)
            continue
        if record is None or not record.has_location:
            logger.debug("tour: no GPS in {}", safe.name)
            continue
        # 시각 없는 사진은 처리 시점의 now (메타데이터 없는 사진끼리는 순서가 섞일 수 있음)
        out.append(_Candidate(safe, record, record.captured_at or dt.datetime.now()))
    return out


def build_entries(candidates: Sequence[_Candidate], include_full_images: bool = False) -> List[PhotoTourEntry]:
    """시간순 정렬(안정 정렬) 후 1..N 번호 부여."""
    ordered = sorted(candidates, key=lambda c: c.taken_at)
    entries: List[PhotoTourEntry] = []
    for number, c in enumerate(ordered, start=1):
        photo_id = f"photo_{number:03d}"
        r = c.record
        entries.append(PhotoTourEntry(
            number=number,
            id=photo_id,
            filepath=str(c.path),
            filename=c.path.name,
            latitude=r.latitude,
            longitude=r.longitude,
            altitude=r.altitude or 0.0,
            taken_at=c.taken_at,
            camera=f"{r.make or ''} {r.model or ''}".strip(),
            lens=r.lens_model or "",
            thumbnail_name=f"{photo_id}_thumb.jpg",
            full_image_name=f"{photo_id}_full.jpg" if include_full_images else None,
        ))
    return entries


def _render_images(entries: Sequence[PhotoTourEntry], images_dir: Path, thumbnail_size: int) -> int:
    """썸네일/원본 사본 생성. 실패해도 투어는 계속 (문서는 없는 이미지를 가리킬 수 있음)."""
    failures = 0
    for entry in entries:
        try:
            save_thumbnail(Path(entry.filepath), images_dir / entry.thumbnail_name, thumbnail_size)
            if entry.full_image_name:
                save_full_image(Path(entry.filepath), images_dir / entry.full_image_name)
        except (Image.DecompressionBombError, OSError, ValueError) as e:
            failures += 1
            logger.warning("tour: image generation failed for {}: {}", entry.filename, e)
    return failures


def _write_archive(workspace: Path, output: Path) -> None:
    try:
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            zf.write(workspace / "doc.kml", "doc.kml")
            for image in sorted((workspace / "images").iterdir()):
                zf.write(image, f"images/{image.name}")
    except (OSError, zipfile.BadZipFile) as e:
        output.unlink(missing_ok=True)
        raise PackagingError(f"Failed to write KMZ archive {output.name}: {e}") from e


def _summary(entries: Sequence[PhotoTourEntry], title: str, draw_path: bool,
             number_photos: bool, output: Path, size_bytes: int) -> str:
    lines = [
        "🌍 Photo Tour KMZ Created!",
        "=" * 50,
        "",
        f"📍 Title: {title}",
        f"📸 Photos with GPS: {len(entries)}",
        f"📏 Path: {'Yes' if draw_path else 'No'}",
        f"🔢 Numbered: {'Yes' if number_photos else 'No'}",
        f"📦 File size: {size_bytes / 1024 / 1024:.2f}MB",
        f"📁 Output: {output.name}",
        "",
        "Journey Timeline:",
    ]
    lines += [f"  {e.number}. {format_timestamp(e.taken_at)} - {e.filename}" for e in entries[:TIMELINE_PREVIEW]]
    if len(entries) > TIMELINE_PREVIEW:
        lines.append(f"  ... and {len(entries) - TIMELINE_PREVIEW} more photos")
    lines += ["", "💡 Open in Google Earth to view your photo journey!"]
    return "\n".join(lines)


def build_photo_tour(
    filepaths: Sequence[str],
    output_path: str,
    title: str = DEFAULT_TITLE,
    description: str = "",
    thumbnail_size: int = DEFAULT_THUMBNAIL_SIZE,
    include_full_images: bool = False,
    draw_path: bool = True,
    number_photos: bool = True,
    root: RootLike = None,
    extractor: Extractor = extract_metadata,
) -> TourResult:
    """
    GPS 사진들 → KMZ (doc.kml + images/).
    작업 폴더는 출력 파일 옆에 임시로 만들고, 패키징 성공/실패와 관계없이 지운다.
    """
    if not isinstance(filepaths, (list, tuple)) or not filepaths:
        raise InvalidInput("filepaths must be a non-empty array")
    if not MIN_THUMBNAIL_SIZE <= thumbnail_size <= MAX_THUMBNAIL_SIZE:
        raise InvalidInput(f"thumbnail_size must be between {MIN_THUMBNAIL_SIZE} and {MAX_THUMBNAIL_SIZE}")
    output = validate_output_path(output_path, ".kmz", root)

    candidates = collect_candidates(filepaths, root, extractor)
    if not candidates:
        logger.info("tour: no GPS photos among {} files", len(filepaths))
        return TourResult(created=False, skipped_count=len(filepaths), summary=NO_GPS_MESSAGE)

    entries = build_entries(candidates, include_full_images)
    document = build_kml(entries, title, description, draw_path, number_photos)

    try:
        workspace = Path(tempfile.mkdtemp(prefix=".kmz_temp_", dir=output.parent))
    except OSError as e:
        raise PackagingError(f"Failed to create scratch workspace: {e}") from e
    try:
        images_dir = workspace / "images"
        try:
            images_dir.mkdir()
            (workspace / "doc.kml").write_text(document, encoding="utf-8")
        except OSError as e:
            raise PackagingError(f"Failed to write KML document: {e}") from e
        failures = _render_images(entries, images_dir, thumbnail_size)
        _write_archive(workspace, output)
    finally:
        shutil.rmtree(workspace, ignore_errors=True)

    size_bytes = output.stat().st_size
    logger.info("tour: wrote {} ({} photos, {} image failures)", output, len(entries), failures)
    return TourResult(
        created=True,
        output_path=str(output),
        photo_count=len(entries),
        skipped_count=len(filepaths) - len(entries),
        size_bytes=size_bytes,
        summary=_summary(entries, title, draw_path, number_photos, output, size_bytes),
    )
