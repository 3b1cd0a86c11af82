# servers/exif_server.py
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
# --- project-root import bootstrap ---
import sys, os
_ROOT = os.path.dirname(os.path.dirname(__file__))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)
# --- end bootstrap ---

from typing import List, Optional
from typing_extensions import Annotated

from loguru import logger
from pydantic import Field

from schemas import (
    BatchParseItem, GpsLookupResult, ParseOptions, RenameReport, StripResult, TourResult,
)
from utils.errors import ExifToolError
from utils.exif_geo import extract_batch, extract_metadata, format_exif_report, lookup_gps
from utils.imaging import strip_metadata
from utils.log import init_logging
from utils.path_safety import validate_image_path
from utils.photo_tour import DEFAULT_THUMBNAIL_SIZE, DEFAULT_TITLE, build_photo_tour
from utils.rename_engine import rename_batch
from utils.rename_template import DEFAULT_DATE_FORMAT, DEFAULT_TEMPLATE, DEFAULT_TIME_FORMAT
from utils.settings import SERVER_NAME

app = FastMCP(SERVER_NAME)


@app.tool()
def parse_exif(filepath: str, options: ParseOptions = ParseOptions()) -> str:
    """Parse EXIF data from an image file."""
    try:
        safe = validate_image_path(filepath)
        record = extract_metadata(safe, options)
    except ExifToolError as e:
        raise ToolError(str(e)) from e
    if record is None:
        return f"No EXIF data found in {safe.name}"
    return format_exif_report(record, safe.name)


@app.tool()
def parse_exif_batch(filepaths: List[str], options: ParseOptions = ParseOptions()) -> List[BatchParseItem]:
    """Parse EXIF data from multiple image files. Per-file status: success / no_exif / error."""
    try:
        return extract_batch(filepaths, options)
    except ExifToolError as e:
        raise ToolError(str(e)) from e


@app.tool()
def get_gps_coordinates(filepath: str) -> GpsLookupResult:
    """Extract just GPS coordinates from an image."""
    try:
        return lookup_gps(filepath)
    except ExifToolError as e:
        raise ToolError(str(e)) from e


@app.tool()
def rename_by_exif(
    filepaths: List[str],
    template: str = DEFAULT_TEMPLATE,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    dry_run: bool = True,
    backup: bool = True,
    counter_start: Annotated[int, Field(ge=0, le=999999)] = 1,
) -> RenameReport:
    """
    Rename image files based on EXIF data using a template.
    Variables: {date}, {time}, {datetime}, {camera}, {model}, {lens}, {location},
    {city}, {country}, {original}, {counter}. Unknown variables are kept literally.
    dry_run (default true) only previews the new names.
    """
    try:
        return rename_batch(
            filepaths,
            template=template,
            date_format=date_format,
            time_format=time_format,
            dry_run=dry_run,
            backup=backup,
            counter_start=counter_start,
        )
    except ExifToolError as e:
        raise ToolError(str(e)) from e


@app.tool()
def create_photo_tour_kmz(
    filepaths: List[str],
    output_path: str,
    title: str = DEFAULT_TITLE,
    description: str = "",
    thumbnail_size: Annotated[int, Field(ge=16, le=4096)] = DEFAULT_THUMBNAIL_SIZE,
    include_full_images: bool = False,
    draw_path: bool = True,
    number_photos: bool = True,
) -> TourResult:
    """Create a KMZ file with geotagged photos showing your journey path (open in Google Earth)."""
    try:
        return build_photo_tour(
            filepaths,
            output_path,
            title=title,
            description=description,
            thumbnail_size=thumbnail_size,
            include_full_images=include_full_images,
            draw_path=draw_path,
            number_photos=number_photos,
        )
    except ExifToolError as e:
        raise ToolError(str(e)) from e


@app.tool()
def strip_exif(filepath: str, backup: bool = True, keep: Optional[List[str]] = None) -> StripResult:
    """Remove EXIF/XMP/IPTC data from a photo for privacy, optionally keeping some EXIF fields (e.g. Make, Model)."""
    try:
        safe = validate_image_path(filepath)
        return strip_metadata(safe, keep or [], backup=backup)
    except ExifToolError as e:
        raise ToolError(str(e)) from e


if __name__ == "__main__":
    init_logging()
    try:
        app.run()
    except Exception as e:
        logger.exception("server error: {}", e)
        sys.exit(1)
