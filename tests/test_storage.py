import datetime as dt

import httpx
import pytest

from conftest import FakeRemoteStore, PDF_BYTES
from reportshare.clients import KVClient, ObjectStoreClient
from reportshare.config import Settings
from reportshare.db import Database
from reportshare.errors import SlugConflict, StorageError
from reportshare.filetypes import FileType
from reportshare.storage import (
    DatabaseBlobStorage,
    DiskStorage,
    KVObjectStorage,
    create_storage,
)

T0 = dt.datetime(2024, 5, 1, 12, 0, 0)


def _kv_storage(remote_store):
    client = httpx.Client(transport=remote_store.transport())
    return KVObjectStorage(
        KVClient(FakeRemoteStore.KV_URL, "token", client=client),
        ObjectStoreClient(FakeRemoteStore.OBJECTS_URL, "token", client=client),
    )


@pytest.fixture(params=["disk", "blob", "kv"])
def storage(request, tmp_path, remote_store):
    if request.param == "disk":
        backend = DiskStorage(Database(f"sqlite:///{tmp_path}/meta.db"), tmp_path / "files")
    elif request.param == "blob":
        backend = DatabaseBlobStorage(Database(f"sqlite:///{tmp_path}/blob.db"))
    else:
        backend = _kv_storage(remote_store)
    backend.init()
    yield backend
    backend.close()


def _put(storage, slug, name="report.pdf", when=T0, data=PDF_BYTES, file_type=FileType.pdf):
    return storage.put(slug=slug, original_name=name, file_type=file_type, uploaded_at=when, data=data)


def test_put_get_read_roundtrip(storage):
    record = _put(storage, "report")

    assert record.slug == "report"
    assert record.file_size == len(PDF_BYTES)
    assert record.file_type == FileType.pdf

    loaded = storage.get("report")
    assert loaded == record
    assert storage.read(loaded) == PDF_BYTES


def test_unknown_slug_is_not_found_not_error(storage):
    assert storage.get("missing") is None
    assert storage.slug_exists("missing") is False
    assert storage.delete("missing") is False


def test_put_is_insert_if_absent(storage):
    _put(storage, "report")
    with pytest.raises(SlugConflict):
        _put(storage, "report", name="other.pdf", data=b"%PDF-other")

    survivor = storage.get("report")
    assert survivor.original_name == "report.pdf"
    assert storage.read(survivor) == PDF_BYTES


def test_list_is_newest_first(storage):
    _put(storage, "old", when=T0)
    _put(storage, "newest", when=T0 + dt.timedelta(hours=2))
    _put(storage, "middle", when=T0 + dt.timedelta(hours=1))

    assert [r.slug for r in storage.list()] == ["newest", "middle", "old"]


def test_delete_twice(storage):
    _put(storage, "report")
    assert storage.delete("report") is True
    assert storage.delete("report") is False
    assert storage.get("report") is None
    assert storage.slug_exists("report") is False
    assert storage.list() == []


def test_excel_locator_keeps_extension(storage):
    record = _put(storage, "budget", name="Budget.xls", file_type=FileType.excel, data=b"xls-bytes")
    assert record.storage_locator.endswith(".xls")
    assert storage.read(record) == b"xls-bytes"


def test_disk_layout_and_byte_cleanup(tmp_path):
    storage = DiskStorage(Database(f"sqlite:///{tmp_path}/meta.db"), tmp_path / "files")
    storage.init()

    record = _put(storage, "q1", name="Q1.xlsx", file_type=FileType.excel, data=b"xlsx")
    assert record.storage_locator == "excel/q1.xlsx"
    assert (tmp_path / "files" / "excel" / "q1.xlsx").read_bytes() == b"xlsx"

    assert storage.delete("q1") is True
    assert not (tmp_path / "files" / "excel" / "q1.xlsx").exists()
    storage.close()


def test_disk_delete_succeeds_when_bytes_already_gone(tmp_path):
    storage = DiskStorage(Database(f"sqlite:///{tmp_path}/meta.db"), tmp_path / "files")
    storage.init()
    _put(storage, "report")
    (tmp_path / "files" / "pdfs" / "report.pdf").unlink()

    assert storage.delete("report") is True
    assert storage.get("report") is None
    storage.close()


def test_disk_orphaned_bytes_block_slug(tmp_path):
    storage = DiskStorage(Database(f"sqlite:///{tmp_path}/meta.db"), tmp_path / "files")
    storage.init()
    orphan = tmp_path / "files" / "pdfs" / "report.pdf"
    orphan.parent.mkdir(parents=True)
    orphan.write_bytes(b"left over")

    assert storage.slug_exists("report") is True
    with pytest.raises(SlugConflict):
        _put(storage, "report")
    assert orphan.read_bytes() == b"left over"
    storage.close()


def test_blob_locator_is_embedded(tmp_path):
    storage = DatabaseBlobStorage(Database(f"sqlite:///{tmp_path}/blob.db"))
    storage.init()
    record = _put(storage, "report")
    assert record.storage_locator == "db:report.pdf"
    storage.close()


def test_kv_conflict_removes_uploaded_object(remote_store):
    storage = _kv_storage(remote_store)
    _put(storage, "report")
    assert len(remote_store.objects) == 1

    with pytest.raises(SlugConflict):
        _put(storage, "report")
    assert len(remote_store.objects) == 1


def test_kv_delete_swallows_object_errors(remote_store):
    storage = _kv_storage(remote_store)
    record = _put(storage, "report")
    remote_store.fail_object_deletes = True

    assert storage.delete("report") is True
    assert storage.get("report") is None
    # the blob is orphaned but the registry stays consistent
    assert record.storage_locator in remote_store.objects


def test_kv_locator_is_object_url(remote_store):
    storage = _kv_storage(remote_store)
    record = _put(storage, "report")
    assert record.storage_locator.startswith(FakeRemoteStore.OBJECTS_URL + "/pdfs/report-")
    assert record.storage_locator.endswith(".pdf")


def test_kv_unavailable_raises_storage_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))
    storage = KVObjectStorage(
        KVClient("http://kv.test", client=client),
        ObjectStoreClient("http://objects.test", client=client),
    )
    with pytest.raises(StorageError):
        storage.get("report")


@pytest.mark.parametrize("failure", [httpx.WriteTimeout, httpx.ConnectTimeout, httpx.RemoteProtocolError])
def test_kv_transport_failure_on_set_removes_uploaded_object(remote_store, failure):
    def flaky(request):
        if str(request.url).startswith(FakeRemoteStore.KV_URL) and b'"SET"' in request.content:
            raise failure("connection dropped", request=request)
        return remote_store.handle(request)

    client = httpx.Client(transport=httpx.MockTransport(flaky))
    storage = KVObjectStorage(
        KVClient(FakeRemoteStore.KV_URL, client=client),
        ObjectStoreClient(FakeRemoteStore.OBJECTS_URL, client=client),
    )
    with pytest.raises(StorageError):
        _put(storage, "report")
    assert remote_store.objects == {}
    assert remote_store.values == {}


def test_create_storage_selects_backend(tmp_path):
    base = {"data_dir": str(tmp_path), "files_dir": str(tmp_path / "files")}
    assert isinstance(create_storage(Settings(storage_backend="disk", **base)), DiskStorage)
    assert isinstance(create_storage(Settings(storage_backend="blob", **base)), DatabaseBlobStorage)
    kv = create_storage(Settings(
        storage_backend="kv",
        kv_rest_url="http://kv.test",
        object_store_url="http://objects.test",
        **base,
    ))
    assert isinstance(kv, KVObjectStorage)


def test_create_storage_kv_requires_endpoints(tmp_path):
    with pytest.raises(ValueError):
        create_storage(Settings(storage_backend="kv", data_dir=str(tmp_path)))
