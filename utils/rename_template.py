# utils/rename_template.py
import re
import datetime as dt
from typing import Dict, Optional

from schemas import MetadataRecord
from utils.errors import InvalidInput

DEFAULT_TEMPLATE = "{datetime}_{camera}_{original}"
DEFAULT_DATE_FORMAT = "YYYY-MM-DD"
DEFAULT_TIME_FORMAT = "HHmmss"
MAX_TEMPLATE_LENGTH = 255

PLACEHOLDERS = (
    "date", "time", "datetime", "camera", "model", "lens",
    "location", "city", "country", "original", "counter",
)

_CITY_KEYS = ("City", "city")
_COUNTRY_KEYS = ("Country", "Country-PrimaryLocationName", "CountryName", "country")

_MULTI_UNDERSCORE = re.compile(r"_{2,}")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\-.]")
_PLACEHOLDER = re.compile(r"\{([a-z]+)\}")


def validate_template(template: str) -> str:
    if not template or not isinstance(template, str):
        raise InvalidInput("template must be a non-empty string")
    if len(template) > MAX_TEMPLATE_LENGTH:
        raise InvalidInput(f"template is too long (max {MAX_TEMPLATE_LENGTH} characters)")
    if any(c in template for c in ("/", "\\", "\x00")):
        raise InvalidInput("template must not contain path separators")
    return template


def format_date(value: dt.datetime, fmt: str) -> str:
    # 토큰마다 첫 번째 출현만 치환
    return (fmt.replace("YYYY", f"{value.year:04d}", 1)
               .replace("MM", f"{value.month:02d}", 1)
               .replace("DD", f"{value.day:02d}", 1))


def format_time(value: dt.datetime, fmt: str) -> str:
    return (fmt.replace("HH", f"{value.hour:02d}", 1)
               .replace("mm", f"{value.minute:02d}", 1)
               .replace("ss", f"{value.second:02d}", 1))


def _first_field(record: MetadataRecord, keys) -> str:
    for key in keys:
        value = record.fields.get(key)
        if value:
            return str(value)
    return ""


def sanitize_filename(name: str) -> str:
    name = _MULTI_UNDERSCORE.sub("_", name)
    name = name.strip("_")
    return _UNSAFE_CHARS.sub("_", name)


def build_values(
    record: Optional[MetadataRecord],
    original: str,
    counter: int,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    now: Optional[dt.datetime] = None,
) -> Dict[str, str]:
    """플레이스홀더 → 치환 문자열."""
    values = dict.fromkeys(PLACEHOLDERS, "")
    values.update(original=original, counter=f"{counter:03d}")

    if record is None:
        values.update(date="NoDate", time="NoTime", datetime="NoDateTime", camera="NoCamera")
        return values

    taken = record.captured_at or now or dt.datetime.now()
    date_str = format_date(taken, date_format)
    time_str = format_time(taken, time_format)

    values.update({
        "date": date_str,
        "time": time_str,
        "datetime": f"{date_str}_{time_str}",
        "camera": re.sub(r"\s+", "", record.make or ""),
        "model": re.sub(r"\s+", "", record.model or ""),
        "lens": re.sub(r"[/\\\s]+", "-", record.lens_model or ""),
    })
    if record.has_location:
        values["location"] = f"{record.latitude:.4f}_{record.longitude:.4f}"
        values["city"] = _first_field(record, _CITY_KEYS)
        values["country"] = _first_field(record, _COUNTRY_KEYS)
    return values


def render_filename(
    template: str,
    record: Optional[MetadataRecord],
    original: str,
    counter: int,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    now: Optional[dt.datetime] = None,
) -> str:
    """
    템플릿 → 파일명(확장자 제외). (template, record, formats, counter, now)에 대한 순수 함수.
    모르는 {placeholder}는 그대로 남기고 마지막 정리 단계에서 안전한 문자로 바뀐다.
    """
    values = build_values(record, original, counter, date_format, time_format, now)
    # 한 번에 치환: 치환된 값 안의 {..} 는 다시 해석하지 않음
    name = _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)
    return sanitize_filename(name)
