import time

import pytest

from map_engine.errors import NotFound, ProviderError, ValidationError
from map_engine.storage import BlobStorage


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(tmp_path, "bank-statements", "test-secret")


def test_object_path_is_per_user_per_upload():
    assert BlobStorage.object_path("u1", "up1", "March Statement.pdf") == "u1/up1/March_Statement.pdf"
    assert BlobStorage.object_path("u1", "up1", "../../etc/passwd") == "u1/up1/etc_passwd"


def test_upload_download_list_remove(storage):
    path = storage.upload("u1/up1/march.pdf", b"%PDF-1.4 fake")
    assert storage.download(path) == b"%PDF-1.4 fake"

    listing = storage.list("u1")
    assert [(f["name"], f["path"], f["size"]) for f in listing] == [("up1/march.pdf", "u1/up1/march.pdf", 13)]
    assert listing[0]["mimetype"] == "application/pdf"

    assert storage.remove([path, "u1/up1/missing.pdf"]) == [path]
    assert storage.list("u1") == []
    assert storage.base.is_dir()
    with pytest.raises(NotFound):
        storage.download(path)


def test_upload_does_not_overwrite_without_upsert(storage):
    storage.upload("u1/up1/a.pdf", b"one")
    with pytest.raises(ProviderError):
        storage.upload("u1/up1/a.pdf", b"two")
    storage.upload("u1/up1/a.pdf", b"two", upsert=True)
    assert storage.download("u1/up1/a.pdf") == b"two"


@pytest.mark.parametrize("path", ["../outside.pdf", "u1/../../x.pdf", "", "/"])
def test_paths_cannot_escape_the_bucket(storage, path):
    with pytest.raises(ValidationError):
        storage.upload(path, b"x")


def test_signed_url_resolves_until_expiry(storage, monkeypatch):
    storage.upload("u1/up1/a.pdf", b"data")
    token = storage.create_signed_url("u1/up1/a.pdf", 3600)
    assert storage.resolve_signed_url(token) == "u1/up1/a.pdf"

    later = time.time() + 3601
    monkeypatch.setattr("map_engine.storage.time.time", lambda: later)
    with pytest.raises(ProviderError, match="expired"):
        storage.resolve_signed_url(token)


def test_signed_url_rejects_tampering(storage):
    storage.upload("u1/up1/a.pdf", b"data")
    token = storage.create_signed_url("u1/up1/a.pdf", 60)
    with pytest.raises(ProviderError, match="Invalid"):
        storage.resolve_signed_url("x" + token)
    other = BlobStorage(storage.base.parent, "bank-statements", "another-secret")
    with pytest.raises(ProviderError, match="Invalid"):
        other.resolve_signed_url(token)


def test_signed_url_requires_existing_object(storage):
    with pytest.raises(NotFound):
        storage.create_signed_url("u1/up1/none.pdf", 60)
