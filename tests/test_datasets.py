from __future__ import annotations

import io
import tarfile
import urllib.error

import pytest

from atomistic_nodes import datasets

XYZ = "1\nProperties=species:S:1:pos:R:3 energy=-1.0\nAl 0.0 0.0 0.0\n"


def _tarball(name: str, content: str) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        data = content.encode()
        info = tarfile.TarInfo(name)
        info.size = len(data)
        archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def serve(monkeypatch):
    requested = []

    def _serve(payload: bytes):
        def urlopen(url, timeout=None):
            requested.append(url)
            return io.BytesIO(payload)

        monkeypatch.setattr(datasets.urllib.request, "urlopen", urlopen)
        return requested

    return _serve


def test_plain_file(tmp_path, serve):
    requested = serve(XYZ.encode())
    target = datasets.fetch_dataset("https://example.org/al.xyz", tmp_path / "al.xyz")
    assert requested == ["https://example.org/al.xyz"]
    assert target.read_text() == XYZ


def test_tarball(tmp_path, serve):
    serve(_tarball("TiAl_tutorial/TiAl_tutorial.xyz", XYZ))
    target = datasets.fetch_dataset(
        datasets.TIAL_TUTORIAL_URL, tmp_path / "data" / "TiAl_tutorial.xyz"
    )
    assert target.read_text() == XYZ


def test_tarball_without_member(tmp_path, serve):
    serve(_tarball("README", "nothing here"))
    with pytest.raises(FileNotFoundError):
        datasets.fetch_dataset(datasets.TIAL_TUTORIAL_URL, tmp_path / "TiAl.xyz")
    assert not (tmp_path / "TiAl.xyz").exists()


def test_existing_file_is_kept(tmp_path, serve):
    requested = serve(b"new")
    target = tmp_path / "al.xyz"
    target.write_text(XYZ)
    datasets.FetchDataset.node_function(str(target), url="https://example.org/al.xyz")
    assert requested == []
    assert target.read_text() == XYZ


def test_download_failure(tmp_path, monkeypatch):
    def urlopen(url, timeout=None):
        raise urllib.error.URLError("offline")

    monkeypatch.setattr(datasets.urllib.request, "urlopen", urlopen)
    with pytest.raises(urllib.error.URLError):
        datasets.fetch_dataset("https://example.org/al.xyz", tmp_path / "al.xyz")
