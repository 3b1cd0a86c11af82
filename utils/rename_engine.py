# utils/rename_engine.py
import os
import shutil
import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set

from loguru import logger

from schemas import MetadataRecord, ParseOptions, RenameOutcome, RenameReport
from utils.errors import ExifToolError, InvalidInput, RenameError
from utils.exif_geo import extract_metadata
from utils.path_safety import RootLike, validate_image_path
from utils.rename_template import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_TEMPLATE,
    DEFAULT_TIME_FORMAT,
    render_filename,
    sanitize_filename,
    validate_template,
)
from utils.settings import MAX_COLLISION_ATTEMPTS

Extractor = Callable[[Path, ParseOptions], Optional[MetadataRecord]]

RENAME_FIELDS = ParseOptions(gps=True, xmp=True, iptc=True, thumbnail=False, icc=False)


@dataclass
class _RenameBatch:
    """배치 1회 호출 동안만 사는 상태. 호출 간 공유하지 않는다."""
    root: RootLike
    dry_run: bool
    backup: bool
    counter: int
    backup_dir: Optional[Path] = None
    reserved: Set[Path] = field(default_factory=set)

    def take_counter(self) -> int:
        # 성공/실패와 무관하게 항목마다 하나씩 소비
        value = self.counter
        self.counter += 1
        return value


def create_backup_dir(directory: Path, now: Optional[dt.datetime] = None,
                      max_attempts: int = MAX_COLLISION_ATTEMPTS) -> Path:
    """exif_backup_<timestamp>[_N] 생성. mkdir 자체가 원자적이라 동시 호출과도 겹치지 않음."""
    stamp = (now or dt.datetime.now()).isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
    base = directory / f"exif_backup_{stamp}"
    candidate = base
    for n in range(1, max_attempts + 1):
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            candidate = directory / f"{base.name}_{n}"
    raise RenameError(f"Could not create a unique backup directory in {directory}")


def resolve_collision(directory: Path, stem: str, ext: str, current: Optional[Path] = None,
                      reserved: Set[Path] = frozenset(),
                      max_attempts: int = MAX_COLLISION_ATTEMPTS) -> Path:
    """name.ext, name_1.ext, name_2.ext ... 중 비어있는 첫 경로. 자기 자신과 같으면 그대로."""
    candidate = directory / f"{stem}{ext}"
    attempt = 0
    while candidate != current and (candidate.exists() or candidate in reserved):
        attempt += 1
        if attempt > max_attempts:
            raise RenameError(f"No free filename for {stem}{ext} after {max_attempts} attempts")
        candidate = directory / f"{stem}_{attempt}{ext}"
    return candidate


def _free_path(directory: Path, name: str) -> Path:
    p = Path(name)
    return resolve_collision(directory, p.stem, p.suffix)


def _commit(src: Path, dest: Path, batch: _RenameBatch) -> None:
    if dest == src:
        return
    if batch.backup:
        # 1) 원본을 백업 폴더로 이동 → 2) 백업본을 최종 경로로 복사.
        # 두 단계 사이에 죽어도 원본은 백업 폴더에 남는다.
        backup_path = _free_path(batch.backup_dir, src.name)
        shutil.move(str(src), str(backup_path))
        shutil.copy2(str(backup_path), str(dest))
    else:
        os.rename(src, dest)


def _display_name(raw) -> str:
    return os.path.basename(raw) if isinstance(raw, str) and raw else str(raw)


def _rename_one(raw, batch: _RenameBatch, template: str, date_format: str,
                time_format: str, extractor: Extractor) -> RenameOutcome:
    counter = batch.take_counter()
    try:
        safe = validate_image_path(raw, batch.root)
        record = extractor(safe, RENAME_FIELDS)
        stem = render_filename(template, record, safe.stem, counter, date_format, time_format)
        if not stem:
            # 템플릿이 전부 빈 값으로 치환된 경우 원래 이름 유지
            stem = sanitize_filename(safe.stem) or safe.stem
        final = resolve_collision(safe.parent, stem, safe.suffix, safe, batch.reserved)
        batch.reserved.add(final)

        if batch.dry_run:
            return RenameOutcome(original=safe.name, new=final.name, status="preview",
                                 exif_found=record is not None)
        _commit(safe, final, batch)
        return RenameOutcome(original=safe.name, new=final.name, status="renamed",
                             exif_found=record is not None)
    except ExifToolError as e:
        logger.warning("rename skipped for {}: {}", _display_name(raw), e)
        return RenameOutcome(original=_display_name(raw), status="error", error=str(e))
    except OSError as e:
        logger.warning("rename failed for {}: {}", _display_name(raw), e)
        return RenameOutcome(original=_display_name(raw), status="error",
                             error=str(RenameError(f"Move failed: {e}")))


def _first_valid_dir(filepaths: Sequence[str], root: RootLike) -> Optional[Path]:
    for raw in filepaths:
        try:
            return validate_image_path(raw, root).parent
        except ExifToolError:
            continue
    return None


def format_rename_report(report: RenameReport) -> str:
    out = ["📸 Batch Rename Results", "=" * 50, ""]
    out.append(f"Mode: {'🔍 PREVIEW MODE (no files changed)' if report.dry_run else '✅ RENAME MODE'}")
    out.append(f'Template: "{report.template}"')
    if report.backup_dir:
        out.append(f"Backups: {report.backup_dir}")
    out.append("")

    for o in report.outcomes:
        if o.status == "error":
            out.append(f"❌ ERROR: {o.original}")
            out.append(f"   {o.error}")
        else:
            out.append(f"{'✅' if o.exif_found else '⚠️'} {o.original}")
            out.append(f"   → {o.new}")
        out.append("")

    verb = "would be" if report.dry_run else "were"
    out.append(f"Summary: {report.success_count} files {verb} renamed, {report.error_count} errors")
    if report.dry_run:
        out.append("")
        out.append("💡 Tip: Set dry_run to false to actually rename the files.")
    return "\n".join(out)


def rename_batch(
    filepaths: Sequence[str],
    template: str = DEFAULT_TEMPLATE,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    dry_run: bool = True,
    backup: bool = True,
    counter_start: int = 1,
    root: RootLike = None,
    extractor: Extractor = extract_metadata,
) -> RenameReport:
    """
    메타데이터 템플릿으로 일괄 리네임.
    - 항목별 실패는 error 결과로 기록하고 나머지 항목은 계속 처리
    - 결과는 입력 순서 그대로 N개
    - 백업 폴더는 (backup and not dry_run)일 때 항목 처리 전에 한 번만 생성
    """
    if not isinstance(filepaths, (list, tuple)) or not filepaths:
        raise InvalidInput("filepaths must be a non-empty array")
    validate_template(template)

    batch = _RenameBatch(root=root, dry_run=dry_run, backup=backup, counter=counter_start)
    if backup and not dry_run:
        first_dir = _first_valid_dir(filepaths, root)
        if first_dir is not None:
            batch.backup_dir = create_backup_dir(first_dir)
            logger.info("backup directory created: {}", batch.backup_dir)
        else:
            batch.backup = False

    outcomes: List[RenameOutcome] = [
        _rename_one(raw, batch, template, date_format, time_format, extractor)
        for raw in filepaths
    ]

    errors = sum(1 for o in outcomes if o.status == "error")
    report = RenameReport(
        dry_run=dry_run,
        template=template,
        outcomes=outcomes,
        success_count=len(outcomes) - errors,
        error_count=errors,
        backup_dir=str(batch.backup_dir) if batch.backup_dir else None,
    )
    report.report = format_rename_report(report)
    logger.info("rename batch done: {} ok, {} errors (dry_run={})", report.success_count, errors, dry_run)
    return report
