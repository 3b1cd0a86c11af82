# tests/conftest.py
import os
import sys

# 프로젝트 루트 (schemas.py, servers/, utils/) 를 import 경로에 추가
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import datetime as dt
import struct
import zlib

import pytest
from PIL import Image
from PIL.TiffImagePlugin import IFDRational

from schemas import MetadataRecord


def _dms(value: float):
    deg = int(value)
    minutes_full = (value - deg) * 60
    minutes = int(minutes_full)
    seconds = round((minutes_full - minutes) * 60, 2)
    return (IFDRational(deg, 1), IFDRational(minutes, 1), IFDRational(round(seconds * 100), 100))


def write_photo(path, make=None, model=None, lens=None, taken=None, gps=None, size=(64, 48)):
    """EXIF가 들어간 실제 JPEG 작성. gps=(lat, lon) 또는 (lat, lon, alt)."""
    exif = Image.Exif()
    if make:
        exif[0x010F] = make
    if model:
        exif[0x0110] = model
    sub = {}
    if taken:
        sub[0x9003] = taken
    if lens:
        sub[0xA434] = lens
    if sub:
        exif[0x8769] = sub
    if gps:
        lat, lon = gps[0], gps[1]
        gps_ifd = {
            1: "N" if lat >= 0 else "S",
            2: _dms(abs(lat)),
            3: "E" if lon >= 0 else "W",
            4: _dms(abs(lon)),
        }
        if len(gps) > 2:
            gps_ifd[6] = IFDRational(round(gps[2] * 10), 10)
        exif[0x8825] = gps_ifd

    img = Image.new("RGB", size, (120, 160, 200))
    if len(exif):
        img.save(path, format="JPEG", exif=exif.tobytes())
    else:
        img.save(path, format="JPEG")
    return path


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """허용 루트 = 현재 작업 디렉토리 = tmp_path."""
    monkeypatch.delenv("EXIF_MCP_ROOT", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def make_photo(workdir):
    def _make(name, **kwargs):
        return write_photo(workdir / name, **kwargs)
    return _make


@pytest.fixture
def plain_photo(workdir):
    """메타데이터 없는 이미지 파일 생성."""
    def _make(name, size=(64, 48)):
        path = workdir / name
        Image.new("RGB", size, (10, 20, 30)).save(path)
        return path
    return _make


def _record(taken=None, make=None, model=None, lens=None, lat=None, lon=None, alt=None, **fields):
    return MetadataRecord(
        date_time_original=dt.datetime.fromisoformat(taken) if taken else None,
        make=make,
        model=model,
        lens_model=lens,
        latitude=lat,
        longitude=lon,
        altitude=alt,
        fields=fields,
    )


@pytest.fixture
def make_record():
    return _record


@pytest.fixture
def fake_extractor():
    """파일명 → MetadataRecord | None | Exception 으로 추출기를 흉내."""
    def _build(mapping):
        calls = []

        def _extract(path, options):
            calls.append((path.name, options))
            value = mapping.get(path.name)
            if isinstance(value, Exception):
                raise value
            return value

        _extract.calls = calls
        return _extract
    return _build


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)


@pytest.fixture
def huge_png(workdir):
    """헤더만 20000x20000 인 PNG. 픽셀 데이터 없이도 Image.open 단계에서 크기 제한에 걸린다."""
    def _make(name="huge.png"):
        path = workdir / name
        ihdr = struct.pack(">IIBBBBB", 20000, 20000, 8, 2, 0, 0, 0)
        path.write_bytes(b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", ihdr) + _png_chunk(b"IEND", b""))
        return path
    return _make
