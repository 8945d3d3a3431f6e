import os
import re

import pytest

import storage
from settings import settings


@pytest.fixture
def local_storage(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "storage", "local")
    monkeypatch.setattr(settings, "local_dir", str(tmp_path))
    monkeypatch.setattr(settings, "public_base_url", "http://api.test/")
    return tmp_path


def test_save_output_locally(local_storage):
    url = storage.save_output(b"jpeg-bytes", "image/jpeg")
    m = re.fullmatch(r"http://api\.test/files/local/([0-9a-f]{32}\.jpg)", url)
    assert m
    assert (local_storage / m.group(1)).read_bytes() == b"jpeg-bytes"
    assert storage.local_path(m.group(1)) == os.path.realpath(str(local_storage / m.group(1)))


def test_local_path_rejects_missing_and_escaping_names(local_storage):
    (local_storage.parent / "secret.txt").write_text("nope")
    assert storage.local_path("missing.png") is None
    assert storage.local_path("../secret.txt") is None


def test_output_key_is_dated():
    assert re.fullmatch(r"outputs/\d{4}-\d{2}-\d{2}/[0-9a-f]{32}\.webp", storage.output_key("image/webp"))
