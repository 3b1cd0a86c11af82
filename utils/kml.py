# utils/kml.py
from typing import List, Sequence
from xml.sax.saxutils import escape

from schemas import PhotoTourEntry
from utils.exif_geo import format_timestamp

KML_NS = "http://www.opengis.net/kml/2.2"
PHOTO_ICON_HREF = "http://maps.google.com/mapfiles/kml/paddle/red-circle.png"
DESCRIPTION_IMAGE_WIDTH = 400

_QUOTES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(text) -> str:
    """& < > \" ' 다섯 문자 모두 엔티티로."""
    return escape(str(text), _QUOTES)


def _when(entry: PhotoTourEntry) -> str:
    return entry.taken_at.isoformat(timespec="seconds")


def _coords(entry: PhotoTourEntry) -> str:
    return f"{entry.longitude},{entry.latitude},{entry.altitude}"


def _placemark_description(entry: PhotoTourEntry) -> str:
    # 카메라/렌즈 문자열도 이스케이프해서 CDATA 안에 넣는다 (']]>' 포함 방지)
    parts = [
        "<![CDATA[",
        f'<img src="images/{escape_xml(entry.thumbnail_name)}" width="{DESCRIPTION_IMAGE_WIDTH}" /><br/>',
        f"<b>Photo #{entry.number}</b><br/>",
        f"Date: {escape_xml(format_timestamp(entry.taken_at))}<br/>",
    ]
    if entry.camera:
        parts.append(f"Camera: {escape_xml(entry.camera)}<br/>")
    if entry.lens:
        parts.append(f"Lens: {escape_xml(entry.lens)}<br/>")
    parts.append(f"GPS: {entry.latitude:.6f}, {entry.longitude:.6f}<br/>")
    if entry.altitude > 0:
        parts.append(f"Altitude: {entry.altitude:.1f}m<br/>")
    parts.append("]]>")
    return "".join(parts)


def build_kml(entries: Sequence[PhotoTourEntry], title: str, description: str = "",
              draw_path: bool = True, number_photos: bool = True) -> str:
    """정렬·번호가 끝난 entries → KML 문서 문자열 (같은 입력이면 같은 출력)."""
    kml: List[str] = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<kml xmlns="{KML_NS}">',
        "<Document>",
        f"  <name>{escape_xml(title)}</name>",
    ]
    if description:
        kml.append(f"  <description>{escape_xml(description)}</description>")

    kml += [
        '  <Style id="photoIcon">',
        "    <IconStyle>",
        "      <Icon>",
        f"        <href>{PHOTO_ICON_HREF}</href>",
        "      </Icon>",
        '      <hotSpot x="0.5" y="0" xunits="fraction" yunits="fraction"/>',
        "    </IconStyle>",
        "  </Style>",
        '  <Style id="pathStyle">',
        "    <LineStyle>",
        "      <color>ff0000ff</color>",
        "      <width>3</width>",
        "    </LineStyle>",
        "  </Style>",
        "  <Folder>",
        "    <name>Photos</name>",
    ]

    for entry in entries:
        prefix = f"{entry.number}. " if number_photos else ""
        kml += [
            "    <Placemark>",
            f"      <name>{prefix}{escape_xml(entry.filename)}</name>",
            f"      <description>{_placemark_description(entry)}</description>",
            "      <styleUrl>#photoIcon</styleUrl>",
            "      <Point>",
            f"        <coordinates>{_coords(entry)}</coordinates>",
            "      </Point>",
            "      <TimeStamp>",
            f"        <when>{_when(entry)}</when>",
            "      </TimeStamp>",
            "    </Placemark>",
        ]
    kml.append("  </Folder>")

    if draw_path and len(entries) > 1:
        kml += [
            "  <Placemark>",
            "    <name>Photo Path</name>",
            "    <description>The path taken between photos</description>",
            "    <styleUrl>#pathStyle</styleUrl>",
            "    <LineString>",
            "      <tessellate>1</tessellate>",
            "      <coordinates>",
        ]
        kml += [f"        {_coords(entry)}" for entry in entries]
        kml += [
            "      </coordinates>",
            "    </LineString>",
            "  </Placemark>",
        ]

    kml += ["</Document>", "</kml>"]
    return "\n".join(kml)
