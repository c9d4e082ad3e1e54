import os

import pytest

from katlang.kat_file import resolve_locator, file_get_text


@pytest.mark.parametrize("locator, base_dir, expected", [
    ("file:///tmp/a.kat", None, "/tmp/a.kat"),
    ("file:////tmp/a.kat", None, "/tmp/a.kat"),
    ("/tmp/a.kat", "/base", "/tmp/a.kat"),
    ("a.kat", "/base", "/base/a.kat"),
    ("file://lib/a.kat", "/base", "/base/lib/a.kat"),
    ("../a.kat", "/base/lib", "/base/a.kat"),
    ("", "/base", "/base"),
], ids=["file_scheme", "extra_slashes", "absolute", "relative", "relative_scheme", "parent", "empty"])
def test_resolve_locator(locator, base_dir, expected):
    assert resolve_locator(locator, base_dir) == expected


def test_resolve_home():
    assert resolve_locator("~/a.kat") == os.path.expanduser("~/a.kat")


def test_relative_defaults_to_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve_locator("a.kat") == os.path.join(os.getcwd(), "a.kat")


def test_file_get_text(tmp_path):
    (tmp_path / "sum.kat").write_text("9+11", encoding="utf-8")
    assert file_get_text("sum.kat", str(tmp_path)) == "9+11"
    assert file_get_text(f"file://{tmp_path / 'sum.kat'}") == "9+11"


def test_file_get_text_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        file_get_text("missing.kat", str(tmp_path))
    with pytest.raises(IsADirectoryError):
        file_get_text(str(tmp_path))
