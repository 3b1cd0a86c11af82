# tests/test_exif_server.py
import asyncio
import json

import pytest
from fastmcp import Client

from servers.exif_server import app

NEW_YORK = (40.6892, -74.0445)


def call(name, arguments):
    async def _run():
        async with Client(app) as client:
            return await client.call_tool_mcp(name, arguments)
    return asyncio.run(_run())


def payload(res):
    return json.loads(res.content[0].text)


def test_tools_registered():
    async def _run():
        async with Client(app) as client:
            return await client.list_tools()
    names = {t.name for t in asyncio.run(_run())}
    assert names == {
        "parse_exif", "parse_exif_batch", "get_gps_coordinates",
        "rename_by_exif", "create_photo_tour_kmz", "strip_exif",
    }


def test_parse_exif_report(make_photo):
    make_photo("a.jpg", make="Canon", model="EOS R5", taken="2024:07:09 14:30:22")
    res = call("parse_exif", {"filepath": "a.jpg"})
    assert not res.isError
    assert res.content[0].text.startswith("EXIF Data for: a.jpg")


def test_parse_exif_without_metadata(plain_photo):
    plain_photo("plain.jpg")
    res = call("parse_exif", {"filepath": "plain.jpg"})
    assert not res.isError
    assert res.content[0].text == "No EXIF data found in plain.jpg"


def test_parse_exif_ignores_unknown_options(make_photo):
    make_photo("a.jpg", make="Canon", gps=NEW_YORK)
    res = call("parse_exif", {"filepath": "a.jpg", "options": {"gps": False, "bogus": 1}})
    assert not res.isError
    assert "GPS Location" not in res.content[0].text


@pytest.mark.parametrize("filepath, message", [
    ("../etc/passwd.jpg", "Path traversal detected"),
    ("missing.jpg", "File not found"),
])
def test_parse_exif_rejects(workdir, filepath, message):
    res = call("parse_exif", {"filepath": filepath})
    assert res.isError
    assert message in res.content[0].text


def test_parse_exif_batch(make_photo, plain_photo):
    make_photo("a.jpg", make="Nikon")
    plain_photo("b.jpg")
    res = call("parse_exif_batch", {"filepaths": ["a.jpg", "b.jpg", "nope.jpg"]})
    assert not res.isError
    items = payload(res)
    assert [i["status"] for i in items] == ["success", "no_exif", "error"]


def test_get_gps_coordinates(make_photo):
    make_photo("ny.jpg", gps=NEW_YORK)
    res = call("get_gps_coordinates", {"filepath": "ny.jpg"})
    data = payload(res)
    assert data["coordinates"]["latitude"] == pytest.approx(NEW_YORK[0], abs=1e-4)
    assert data["coordinates"]["longitude"] == pytest.approx(NEW_YORK[1], abs=1e-4)
    assert data["google_maps_url"].startswith("https://www.google.com/maps?q=")


def test_rename_preview_is_default(make_photo, workdir):
    make_photo("IMG_0001.jpg", make="Canon", taken="2024:07:09 14:30:22")
    res = call("rename_by_exif", {"filepaths": ["IMG_0001.jpg"]})
    data = payload(res)
    assert data["dry_run"] is True
    assert data["outcomes"][0]["new"] == "2024-07-09_143022_Canon_IMG_0001.jpg"
    assert (workdir / "IMG_0001.jpg").exists()


def test_rename_apply(make_photo, workdir):
    make_photo("IMG_0001.jpg", make="Canon", taken="2024:07:09 14:30:22")
    res = call("rename_by_exif", {"filepaths": ["IMG_0001.jpg"], "template": "{date}_{counter}",
                                  "dry_run": False, "backup": False, "counter_start": 7})
    data = payload(res)
    assert data["outcomes"][0]["status"] == "renamed"
    assert (workdir / "2024-07-09_007.jpg").exists()


@pytest.mark.parametrize("arguments", [
    {"filepaths": []},
    {"filepaths": ["a.jpg"], "template": "a/b"},
    {"filepaths": ["a.jpg"], "counter_start": -1},
])
def test_rename_rejects_bad_arguments(workdir, arguments):
    assert call("rename_by_exif", arguments).isError


def test_create_photo_tour(make_photo, workdir):
    make_photo("a.jpg", taken="2024:07:09 09:00:00", gps=(37.5665, 126.978))
    make_photo("b.jpg", taken="2024:07:09 12:00:00", gps=(35.1796, 129.0756))
    res = call("create_photo_tour_kmz", {"filepaths": ["b.jpg", "a.jpg"], "output_path": "trip.kmz"})
    data = payload(res)
    assert data["created"] is True
    assert data["photo_count"] == 2
    assert (workdir / "trip.kmz").is_file()


def test_create_photo_tour_without_gps(plain_photo, workdir):
    plain_photo("a.jpg")
    data = payload(call("create_photo_tour_kmz", {"filepaths": ["a.jpg"], "output_path": "trip.kmz"}))
    assert data["created"] is False
    assert not (workdir / "trip.kmz").exists()


def test_create_photo_tour_thumbnail_bounds(make_photo):
    make_photo("a.jpg", gps=(1.0, 2.0))
    res = call("create_photo_tour_kmz", {"filepaths": ["a.jpg"], "output_path": "t.kmz", "thumbnail_size": 5000})
    assert res.isError


def test_strip_exif(make_photo, workdir):
    make_photo("a.jpg", make="Canon", model="R5", gps=NEW_YORK)
    data = payload(call("strip_exif", {"filepath": "a.jpg", "keep": ["Model"]}))
    assert data["kept_fields"] == ["Model"]
    assert (workdir / "a.original.jpg").exists()
