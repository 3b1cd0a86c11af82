# utils/exif_geo.py
import io
import os
import json
import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from PIL import ExifTags, Image, ImageCms, IptcImagePlugin, UnidentifiedImageError
from PIL.TiffImagePlugin import IFDRational
from pillow_heif import register_heif_opener

from schemas import BatchParseItem, GpsCoordinates, GpsLookupResult, MetadataRecord, ParseOptions
from utils.errors import ExifToolError, ExtractionError, InvalidInput
from utils.path_safety import RootLike, validate_image_path

register_heif_opener()

# 서브 IFD 포인터/바이너리 덩어리는 필드로 노출하지 않음
_SKIP_TAGS = {0x8769, 0x8825, 0xA005, 0x927C, 0xC4A5}  # Exif, GPS, Interop, MakerNote, PrintIM

# Pillow 태그명 → 통용 별칭 (원래 키도 유지)
_ALIASES = {
    "DateTimeDigitized": "CreateDate",
    "DateTime": "ModifyDate",
    "ISOSpeedRatings": "ISO",
    "ExifImageWidth": "ImageWidth",
    "ExifImageHeight": "ImageHeight",
}

_IPTC_NAMES = {
    (2, 5): "ObjectName",
    (2, 25): "Keywords",
    (2, 55): "DateCreated",
    (2, 60): "TimeCreated",
    (2, 80): "By-line",
    (2, 90): "City",
    (2, 92): "Sub-location",
    (2, 95): "Province-State",
    (2, 100): "Country-PrimaryLocationCode",
    (2, 101): "Country-PrimaryLocationName",
    (2, 105): "Headline",
    (2, 110): "Credit",
    (2, 116): "CopyrightNotice",
    (2, 120): "Caption-Abstract",
}


# ----- 내부 유틸: IFDRational/분수 안전 변환 -----
def _to_float(x):
    if isinstance(x, IFDRational):
        return float(x)
    if isinstance(x, (int, float)):
        return float(x)
    if isinstance(x, tuple) and len(x) == 2:
        a, b = x
        return float(a) / float(b)
    return float(x)


def _dms_to_deg(dms):
    if isinstance(dms, (int, float, IFDRational)):
        return _to_float(dms)
    d, m, s = (_to_float(dms[0]), _to_float(dms[1]), _to_float(dms[2]))
    return d + m/60.0 + s/3600.0


def _ref(value, default: str) -> str:
    if isinstance(value, bytes):
        value = value.decode("ascii", "ignore")
    return (str(value or default).strip("\x00 ") or default).upper()


def _jsonable(value: Any) -> Any:
    """EXIF 값 → JSON 직렬화 가능한 값."""
    if isinstance(value, IFDRational):
        if value.denominator == 0:
            return None
        f = float(value)
        return int(f) if f.is_integer() else round(f, 6)
    if isinstance(value, bytes):
        text = value.rstrip(b"\x00")
        try:
            decoded = text.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{len(value)} bytes>"
        return decoded.strip() if decoded.isprintable() else f"<{len(value)} bytes>"
    if isinstance(value, str):
        return value.strip("\x00").strip()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


def _named(ifd: Mapping, names: Mapping) -> Dict[str, Any]:
    return {str(names.get(k, k)): _jsonable(v) for k, v in ifd.items() if k not in _SKIP_TAGS}


def parse_exif_datetime(value: Any) -> Optional[dt.datetime]:
    """EXIF 'YYYY:MM:DD HH:MM:SS' (또는 ISO 변형) → datetime. 실패 시 None."""
    if isinstance(value, dt.datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    text = value.strip()[:19]
    for fmt in ("%Y:%m:%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _gps_from_tags(gps: Mapping[str, Any]) -> Optional[GpsCoordinates]:
    if "GPSLatitude" not in gps or "GPSLongitude" not in gps:
        return None
    try:
        lat = _dms_to_deg(gps["GPSLatitude"])
        lon = _dms_to_deg(gps["GPSLongitude"])
    except (TypeError, ValueError, IndexError, ZeroDivisionError):
        return None
    lat = abs(lat) if _ref(gps.get("GPSLatitudeRef"), "N") == "N" else -abs(lat)
    lon = abs(lon) if _ref(gps.get("GPSLongitudeRef"), "E") == "E" else -abs(lon)

    alt = None
    if "GPSAltitude" in gps:
        try:
            alt = _to_float(gps["GPSAltitude"])
        except (TypeError, ValueError, ZeroDivisionError):
            alt = None
        ref = gps.get("GPSAltitudeRef")
        if isinstance(ref, bytes):
            ref = ref[:1] == b"\x01"
        if alt is not None and ref in (1, True):
            alt = -abs(alt)
    return GpsCoordinates(latitude=round(lat, 7), longitude=round(lon, 7), altitude=alt)


def _flatten_xmp(node: Any, out: Dict[str, Any]) -> None:
    """getxmp() 중첩 dict에서 단일 값 필드만 평탄화 (먼저 나온 키 우선)."""
    if isinstance(node, list):
        for item in node:
            _flatten_xmp(item, out)
        return
    if not isinstance(node, dict):
        return
    for key, value in node.items():
        if isinstance(value, (dict, list)):
            _flatten_xmp(value, out)
        elif isinstance(value, str) and value.strip():
            out.setdefault(key, value.strip())


def _iptc_fields(img: Image.Image) -> Dict[str, Any]:
    info = IptcImagePlugin.getiptcinfo(img) or {}
    out: Dict[str, Any] = {}
    for key, value in info.items():
        name = _IPTC_NAMES.get(key)
        if name:
            out[name] = _jsonable(value)
    return out


def _icc_fields(img: Image.Image) -> Dict[str, Any]:
    icc = img.info.get("icc_profile")
    if not icc:
        return {}
    out: Dict[str, Any] = {"ICCProfileSize": len(icc)}
    try:
        desc = ImageCms.getProfileDescription(ImageCms.ImageCmsProfile(io.BytesIO(icc)))
    except (OSError, ImageCms.PyCMSError):
        desc = None
    if desc:
        out["ProfileDescription"] = desc.strip()
    return out


def _read_fields(img: Image.Image, options: ParseOptions) -> Dict[str, Any]:
    exif = img.getexif()
    fields: Dict[str, Any] = {}
    fields.update(_named(exif, ExifTags.TAGS))
    fields.update(_named(exif.get_ifd(ExifTags.IFD.Exif), ExifTags.TAGS))

    if options.gps:
        gps_tags = {ExifTags.GPSTAGS.get(k, k): v for k, v in exif.get_ifd(ExifTags.IFD.GPSInfo).items()}
        fields.update({str(k): _jsonable(v) for k, v in gps_tags.items()})
        coords = _gps_from_tags(gps_tags)
        if coords:
            fields["latitude"] = coords.latitude
            fields["longitude"] = coords.longitude
            if coords.altitude is not None:
                fields["altitude"] = coords.altitude

    if options.thumbnail:
        thumb = _named(exif.get_ifd(ExifTags.IFD.IFD1), ExifTags.TAGS)
        if thumb:
            fields["thumbnail"] = thumb

    if options.xmp:
        xmp: Dict[str, Any] = {}
        getxmp = getattr(img, "getxmp", None)
        if getxmp is not None:
            _flatten_xmp(getxmp(), xmp)
        for key, value in xmp.items():
            fields.setdefault(key, value)

    if options.iptc:
        for key, value in _iptc_fields(img).items():
            fields.setdefault(key, value)

    if options.icc:
        fields.update(_icc_fields(img))

    for src, alias in _ALIASES.items():
        if src in fields:
            fields.setdefault(alias, fields[src])

    if fields:
        fields.setdefault("ImageWidth", img.width)
        fields.setdefault("ImageHeight", img.height)
    return fields


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ----- EXIF → MetadataRecord -----
def extract_metadata(path: Path, options: Optional[ParseOptions] = None) -> Optional[MetadataRecord]:
    """
    메타데이터 추출. 임베디드 메타데이터가 전혀 없으면 None (오류 아님).
    디코딩/IO 실패는 ExtractionError.
    """
    options = options or ParseOptions()
    try:
        with Image.open(path) as img:
            fields = _read_fields(img, options)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ExtractionError(f"Failed to read metadata from {Path(path).name}: {e}") from e

    if options.pick:
        keep = set(options.pick) | {"latitude", "longitude", "altitude"}
        fields = {k: v for k, v in fields.items() if k in keep}
    if not fields:
        return None

    return MetadataRecord(
        date_time_original=parse_exif_datetime(fields.get("DateTimeOriginal")),
        create_date=parse_exif_datetime(fields.get("CreateDate")),
        make=_text(fields.get("Make")),
        model=_text(fields.get("Model")),
        lens_model=_text(fields.get("LensModel")),
        latitude=fields.get("latitude"),
        longitude=fields.get("longitude"),
        altitude=fields.get("altitude"),
        fields=fields,
    )


def extract_gps(path: Path) -> Optional[GpsCoordinates]:
    """GPS만 읽는 가벼운 경로."""
    try:
        with Image.open(path) as img:
            gps_ifd = img.getexif().get_ifd(ExifTags.IFD.GPSInfo)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ExtractionError(f"Failed to read GPS data from {Path(path).name}: {e}") from e
    return _gps_from_tags({ExifTags.GPSTAGS.get(k, k): v for k, v in gps_ifd.items()})


def google_maps_url(lat: float, lon: float) -> str:
    return f"https://www.google.com/maps?q={lat},{lon}"


def lookup_gps(filepath: str, root: RootLike = None) -> GpsLookupResult:
    safe = validate_image_path(filepath, root)
    coords = extract_gps(safe)
    if coords is None:
        return GpsLookupResult(filepath=safe.name, message=f"No GPS data found in {safe.name}")
    return GpsLookupResult(
        filepath=safe.name,
        coordinates=coords,
        google_maps_url=google_maps_url(coords.latitude, coords.longitude),
    )


def extract_batch(filepaths, options: Optional[ParseOptions] = None, root: RootLike = None) -> List[BatchParseItem]:
    """파일별 success / no_exif / error. 한 파일의 실패가 나머지를 막지 않는다."""
    if not isinstance(filepaths, (list, tuple)) or not filepaths:
        raise InvalidInput("filepaths must be a non-empty array")
    items: List[BatchParseItem] = []
    for raw in filepaths:
        try:
            safe = validate_image_path(raw, root)
            record = extract_metadata(safe, options)
        except ExifToolError as e:
            name = os.path.basename(raw) if isinstance(raw, str) else str(raw)
            items.append(BatchParseItem(filepath=name, status="error", error=str(e)))
            continue
        if record is None:
            items.append(BatchParseItem(filepath=safe.name, status="no_exif"))
        else:
            items.append(BatchParseItem(filepath=safe.name, status="success", data=record.fields))
    return items


def format_timestamp(value: dt.datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _shutter(exposure: Any) -> str:
    try:
        t = float(exposure)
    except (TypeError, ValueError):
        return str(exposure)
    if 0 < t < 1:
        return f"1/{round(1 / t)}s"
    return f"{exposure}s"


# ----- 사람이 읽는 리포트 -----
def format_exif_report(record: MetadataRecord, filename: str) -> str:
    f = record.fields
    out = [f"EXIF Data for: {filename}", "=" * 50, ""]

    if record.make or record.model:
        out.append("📷 Camera Information:")
        if record.make:
            out.append(f"  Make: {record.make}")
        if record.model:
            out.append(f"  Model: {record.model}")
        if record.lens_model:
            out.append(f"  Lens: {record.lens_model}")
        out.append("")

    if f.get("FNumber") or f.get("ExposureTime") or f.get("ISO"):
        out.append("⚙️  Photo Settings:")
        if f.get("FNumber"):
            out.append(f"  Aperture: f/{f['FNumber']}")
        if f.get("ExposureTime"):
            out.append(f"  Shutter Speed: {_shutter(f['ExposureTime'])}")
        if f.get("ISO"):
            out.append(f"  ISO: {f['ISO']}")
        if f.get("FocalLength"):
            out.append(f"  Focal Length: {f['FocalLength']}mm")
        if f.get("Flash") is not None:
            out.append(f"  Flash: {f['Flash']}")
        out.append("")

    if record.captured_at:
        out.append("📅 Date/Time:")
        out.append(f"  Taken: {format_timestamp(record.captured_at)}")
        out.append("")

    if record.has_location:
        out.append("📍 GPS Location:")
        out.append(f"  Latitude: {record.latitude}")
        out.append(f"  Longitude: {record.longitude}")
        if record.altitude:
            out.append(f"  Altitude: {record.altitude}m")
        out.append(f"  Google Maps: {google_maps_url(record.latitude, record.longitude)}")
        out.append("")

    if f.get("ImageWidth") and f.get("ImageHeight"):
        out.append("🖼️  Image Details:")
        out.append(f"  Dimensions: {f['ImageWidth']} x {f['ImageHeight']}")
        if f.get("Orientation"):
            out.append(f"  Orientation: {f['Orientation']}")
        if f.get("ColorSpace"):
            out.append(f"  Color Space: {f['ColorSpace']}")
        out.append("")

    if f.get("Software"):
        out.append("💻 Software:")
        out.append(f"  {f['Software']}")
        out.append("")

    out.append("📊 All EXIF Data (JSON):")
    out.append(json.dumps(f, indent=2, ensure_ascii=False, default=str))
    return "\n".join(out)
