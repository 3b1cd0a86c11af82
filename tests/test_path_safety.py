# tests/test_path_safety.py
import pytest

from utils.errors import InvalidInput, NotFound, PathTraversal, UnsupportedType
from utils.path_safety import IMAGE_EXTENSIONS, validate_image_path, validate_output_path


@pytest.mark.parametrize("raw", ["", None, 123, ["a.jpg"]])
def test_rejects_empty_or_non_string(workdir, raw):
    with pytest.raises(InvalidInput):
        validate_image_path(raw)


def test_returns_absolute_path_inside_root(workdir, plain_photo):
    plain_photo("a.jpg")
    safe = validate_image_path("a.jpg")
    assert safe.is_absolute()
    assert safe == (workdir / "a.jpg").resolve()


@pytest.mark.parametrize("raw", ["../a.jpg", "sub/../../a.jpg", "../../etc/passwd"])
def test_parent_segments_are_traversal(workdir, raw):
    with pytest.raises(PathTraversal):
        validate_image_path(raw)


def test_absolute_path_outside_root(workdir, tmp_path_factory):
    outside = tmp_path_factory.mktemp("outside") / "x.jpg"
    outside.write_bytes(b"x")
    with pytest.raises(PathTraversal):
        validate_image_path(str(outside))


def test_symlink_escaping_root(workdir, tmp_path_factory):
    outside = tmp_path_factory.mktemp("outside") / "x.jpg"
    outside.write_bytes(b"x")
    (workdir / "link.jpg").symlink_to(outside)
    with pytest.raises(PathTraversal):
        validate_image_path("link.jpg")


def test_normalized_parent_inside_root_is_allowed(workdir, plain_photo):
    (workdir / "sub").mkdir()
    plain_photo("a.jpg")
    assert validate_image_path("sub/../a.jpg") == (workdir / "a.jpg").resolve()


def test_missing_file(workdir):
    with pytest.raises(NotFound):
        validate_image_path("nope.jpg")


def test_directory_is_not_a_file(workdir):
    (workdir / "dir.jpg").mkdir()
    with pytest.raises(NotFound):
        validate_image_path("dir.jpg")


@pytest.mark.parametrize("ext", [e.upper() for e in IMAGE_EXTENSIONS] + list(IMAGE_EXTENSIONS))
def test_supported_extensions_case_insensitive(workdir, ext):
    (workdir / f"photo{ext}").write_bytes(b"x")
    assert validate_image_path(f"photo{ext}").name == f"photo{ext}"


@pytest.mark.parametrize("name", ["notes.txt", "movie.mp4", "archive.kmz", "noext"])
def test_unsupported_extension(workdir, name):
    (workdir / name).write_bytes(b"x")
    with pytest.raises(UnsupportedType):
        validate_image_path(name)


def test_explicit_root_overrides_cwd(tmp_path, monkeypatch):
    root = tmp_path / "photos"
    root.mkdir()
    (root / "a.jpg").write_bytes(b"x")
    monkeypatch.delenv("EXIF_MCP_ROOT", raising=False)
    monkeypatch.chdir(tmp_path)
    assert validate_image_path("a.jpg", root=root) == (root / "a.jpg").resolve()
    with pytest.raises(PathTraversal):
        validate_image_path(str(tmp_path / "other.jpg"), root=root)


def test_env_root(tmp_path, monkeypatch):
    root = tmp_path / "allowed"
    root.mkdir()
    (root / "a.png").write_bytes(b"x")
    monkeypatch.setenv("EXIF_MCP_ROOT", str(root))
    assert validate_image_path(str(root / "a.png")).parent == root.resolve()


class TestOutputPath:
    def test_accepts_new_kmz(self, workdir):
        out = validate_output_path("tour.kmz", ".kmz")
        assert out == (workdir / "tour.kmz").resolve()

    def test_suffix_required(self, workdir):
        with pytest.raises(InvalidInput):
            validate_output_path("tour.zip", ".kmz")

    def test_suffix_case_insensitive(self, workdir):
        assert validate_output_path("Tour.KMZ", ".kmz").name == "Tour.KMZ"

    def test_parent_must_exist(self, workdir):
        with pytest.raises(NotFound):
            validate_output_path("missing/tour.kmz", ".kmz")

    def test_traversal(self, workdir):
        with pytest.raises(PathTraversal):
            validate_output_path("../tour.kmz", ".kmz")
