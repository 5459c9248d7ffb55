"""Local file server: containment, listings and ranged reads."""
import os

import pytest
from fastapi.testclient import TestClient

from watchoffline.localserver import allowed, create_local_app
from watchoffline.utils import encode_segments, split_path


def url_for(path):
    return "/" + encode_segments(split_path(os.path.realpath(path)))


@pytest.fixture
def tree(tmp_path):
    root = tmp_path / "Videos"
    (root / "Season 1").mkdir(parents=True)
    (root / "Season 1" / "Foo S01E01.mkv").write_bytes(bytes(range(256)) * 40)
    (root / "clip.mp4").write_bytes(b"0123456789")
    (tmp_path / "secret.mkv").write_bytes(b"nope")
    return root


@pytest.fixture
def client(tree):
    return TestClient(create_local_app([str(tree)], chunk_size=1024))


def test_ping(client):
    r = client.get("/ping")
    assert r.status_code == 200
    assert r.text == "ok"


def test_whole_file(client, tree):
    r = client.get(url_for(tree / "clip.mp4"))
    assert r.status_code == 200
    assert r.headers["content-type"] == "video/mp4"
    assert r.headers["accept-ranges"] == "bytes"
    assert r.content == b"0123456789"


def test_partial_file(client, tree):
    data = (tree / "Season 1" / "Foo S01E01.mkv").read_bytes()
    r = client.get(url_for(tree / "Season 1" / "Foo S01E01.mkv"), headers={"Range": "bytes=3000-6999"})
    assert r.status_code == 206
    assert r.headers["content-range"] == f"bytes 3000-6999/{len(data)}"
    assert r.content == data[3000:7000]


def test_directory_lists_entries(client, tree):
    r = client.get(url_for(tree))
    assert r.status_code == 200
    assert "text/html" in r.headers["content-type"]
    assert "clip.mp4" in r.text
    assert "Season 1/" in r.text
    assert encode_segments(split_path(os.path.realpath(tree / "Season 1"))) in r.text


def test_missing_file_is_404(client, tree):
    r = client.get(url_for(tree / "gone.mkv"))
    assert r.status_code == 404


def test_outside_roots_is_403(client, tmp_path):
    r = client.get(url_for(tmp_path / "secret.mkv"))
    assert r.status_code == 403


def test_encoded_dot_segments_cannot_escape(client, tree):
    r = client.get(url_for(tree) + "/%2E%2E/secret.mkv")
    assert r.status_code == 403


def test_symlink_out_of_root_is_403(client, tree, tmp_path):
    link = tree / "escape.mkv"
    try:
        os.symlink(tmp_path / "secret.mkv", link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unavailable")
    r = client.get("/" + encode_segments(split_path(os.path.realpath(tree))) + "/escape.mkv")
    assert r.status_code == 403


def test_allowed_uses_whole_path_components(tmp_path):
    root = tmp_path / "media"
    sibling = tmp_path / "media-old"
    root.mkdir()
    sibling.mkdir()
    assert allowed(str(root / "a.mkv"), [str(root)])
    assert allowed(str(root), [str(root)])
    assert not allowed(str(sibling / "a.mkv"), [str(root)])
    assert not allowed(str(root / ".." / "media-old" / "a.mkv"), [str(root)])
