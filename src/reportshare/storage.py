"""Storage backends for uploaded files.

Every backend implements the same contract (see :class:`Storage`) and is
picked once, at configuration time, by :func:`create_storage`:

* ``disk``  - bytes on local disk, metadata in a relational table
* ``blob``  - metadata and bytes in the same relational row
* ``kv``    - metadata in a REST key-value store, bytes in an HTTP object store

``put`` is an insert-if-absent on the slug: when another record already owns
the slug it cleans up whatever bytes it wrote and raises
:class:`~reportshare.errors.SlugConflict`, leaving the retry to the caller.
"""
from __future__ import annotations

import abc
import datetime as dt
import logging
import secrets
from pathlib import Path

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .clients import KVClient, ObjectStoreClient
from .config import Settings
from .db import Database
from .errors import SlugConflict, StorageError
from .filetypes import FileType, content_type_for, extension_for
from .models import StoredFile
from .schemas import FileRecord

logger = logging.getLogger(__name__)


def _folder_for(file_type: FileType) -> str:
    return "pdfs" if file_type == FileType.pdf else "excel"


class Storage(abc.ABC):
    name = "abstract"

    def init(self) -> None:
        """Prepare tables/directories. Called once at process start."""

    def close(self) -> None:
        """Release connections. Called once at shutdown."""

    @abc.abstractmethod
    def slug_exists(self, slug: str) -> bool: ...

    @abc.abstractmethod
    def put(
        self,
        *,
        slug: str,
        original_name: str,
        file_type: FileType,
        uploaded_at: dt.datetime,
        data: bytes,
    ) -> FileRecord: ...

    @abc.abstractmethod
    def get(self, slug: str) -> FileRecord | None: ...

    @abc.abstractmethod
    def read(self, record: FileRecord) -> bytes: ...

    @abc.abstractmethod
    def list(self) -> list[FileRecord]: ...

    @abc.abstractmethod
    def delete(self, slug: str) -> bool: ...


class _SqlStorage(Storage):
    def __init__(self, db: Database):
        self.db = db

    def init(self) -> None:
        self.db.init()

    def close(self) -> None:
        self.db.close()

    @staticmethod
    def _to_record(row: StoredFile) -> FileRecord:
        return FileRecord(
            slug=row.slug,
            original_name=row.original_name,
            uploaded_at=row.uploaded_at,
            file_size=row.file_size,
            file_type=row.file_type,
            storage_locator=row.storage_locator,
        )

    def _row_exists(self, slug: str) -> bool:
        with self.db.session() as db:
            try:
                found = db.execute(select(StoredFile.id).where(StoredFile.slug == slug).limit(1)).first()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to query slug {slug!r}: {e}") from e
        return found is not None

    def _insert(self, row: StoredFile) -> FileRecord:
        with self.db.session() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise SlugConflict(row.slug)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to insert record {row.slug!r}: {e}") from e
            return self._to_record(row)

    def _delete_row(self, slug: str) -> str | None:
        """Remove the metadata row; returns its locator, or None if nothing was deleted."""
        with self.db.session() as db:
            try:
                locator = db.execute(
                    select(StoredFile.storage_locator).where(StoredFile.slug == slug)
                ).scalar_one_or_none()
                if locator is None:
                    return None
                result = db.execute(delete(StoredFile).where(StoredFile.slug == slug))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to delete record {slug!r}: {e}") from e
        # a concurrent delete may have won between the select and the delete
        return locator if result.rowcount else None

    def get(self, slug: str) -> FileRecord | None:
        with self.db.session() as db:
            try:
                row = db.execute(select(StoredFile).where(StoredFile.slug == slug)).scalar_one_or_none()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to load record {slug!r}: {e}") from e
            return self._to_record(row) if row else None

    def list(self) -> list[FileRecord]:
        with self.db.session() as db:
            try:
                rows = db.execute(
                    select(StoredFile).order_by(StoredFile.uploaded_at.desc(), StoredFile.id.desc())
                ).scalars().all()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to list records: {e}") from e
            return [self._to_record(r) for r in rows]


class DiskStorage(_SqlStorage):
    name = "disk"

    def __init__(self, db: Database, files_dir: str | Path):
        super().__init__(db)
        self.root = Path(files_dir)

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        super().init()

    def _path(self, locator: str) -> Path:
        return self.root / locator

    def slug_exists(self, slug: str) -> bool:
        if self._row_exists(slug):
            return True
        # orphaned bytes from an earlier failed upload still block the name
        return any(
            any((self.root / folder).glob(f"{slug}.*"))
            for folder in ("pdfs", "excel")
        )

    def put(self, *, slug, original_name, file_type, uploaded_at, data) -> FileRecord:
        locator = f"{_folder_for(file_type)}/{slug}{extension_for(original_name, file_type)}"
        path = self._path(locator)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with path.open("xb") as out:
                out.write(data)
        except FileExistsError:
            raise SlugConflict(slug)
        except OSError as e:
            raise StorageError(f"Failed to write {locator}: {e}") from e

        row = StoredFile(
            slug=slug,
            original_name=original_name,
            uploaded_at=uploaded_at,
            file_size=len(data),
            file_type=file_type,
            storage_locator=locator,
        )
        try:
            return self._insert(row)
        except Exception:
            self._unlink(path)
            raise

    def read(self, record: FileRecord) -> bytes:
        path = self._path(record.storage_locator)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {record.storage_locator}: {e}") from e

    def delete(self, slug: str) -> bool:
        locator = self._delete_row(slug)
        if locator is None:
            return False
        self._unlink(self._path(locator))
        return True

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except OSError:
            logger.exception("Error deleting file from disk: %s", path)


class DatabaseBlobStorage(_SqlStorage):
    name = "blob"

    def slug_exists(self, slug: str) -> bool:
        return self._row_exists(slug)

    def put(self, *, slug, original_name, file_type, uploaded_at, data) -> FileRecord:
        row = StoredFile(
            slug=slug,
            original_name=original_name,
            uploaded_at=uploaded_at,
            file_size=len(data),
            file_type=file_type,
            storage_locator=f"db:{slug}{extension_for(original_name, file_type)}",
            file_data=data,
        )
        return self._insert(row)

    def read(self, record: FileRecord) -> bytes:
        with self.db.session() as db:
            try:
                data = db.execute(
                    select(StoredFile.file_data).where(StoredFile.slug == record.slug)
                ).scalar_one_or_none()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to read blob {record.slug!r}: {e}") from e
        if data is None:
            raise StorageError(f"Record {record.slug!r} has no stored bytes")
        return data

    def delete(self, slug: str) -> bool:
        return self._delete_row(slug) is not None


class KVObjectStorage(Storage):
    name = "kv"

    INDEX_KEY = "files"

    def __init__(self, kv: KVClient, objects: ObjectStoreClient):
        self.kv = kv
        self.objects = objects

    @staticmethod
    def _key(slug: str) -> str:
        return f"file:{slug}"

    @staticmethod
    def _score(when: dt.datetime) -> float:
        if when.tzinfo is None:
            when = when.replace(tzinfo=dt.timezone.utc)
        return when.timestamp()

    def close(self) -> None:
        self.kv.close()
        self.objects.close()

    def slug_exists(self, slug: str) -> bool:
        return self.kv.get(self._key(slug)) is not None

    def put(self, *, slug, original_name, file_type, uploaded_at, data) -> FileRecord:
        ext = extension_for(original_name, file_type)
        object_key = f"{_folder_for(file_type)}/{slug}-{secrets.token_hex(4)}{ext}"
        url = self.objects.put(object_key, data, content_type_for(ext))

        record = FileRecord(
            slug=slug,
            original_name=original_name,
            uploaded_at=uploaded_at,
            file_size=len(data),
            file_type=file_type,
            storage_locator=url,
        )
        try:
            stored = self.kv.set_if_absent(self._key(slug), record.model_dump_json())
        except StorageError:
            self._delete_object(url)
            raise
        if not stored:
            self._delete_object(url)
            raise SlugConflict(slug)

        try:
            self.kv.zadd(self.INDEX_KEY, self._score(uploaded_at), slug)
        except StorageError:
            logger.exception("Failed to index %s; record stored but unlisted", slug)
        return record

    def get(self, slug: str) -> FileRecord | None:
        raw = self.kv.get(self._key(slug))
        if raw is None:
            return None
        return FileRecord.model_validate_json(raw)

    def read(self, record: FileRecord) -> bytes:
        return self.objects.get(record.storage_locator)

    def list(self) -> list[FileRecord]:
        slugs = self.kv.zrange_desc(self.INDEX_KEY)
        values = self.kv.mget([self._key(s) for s in slugs])
        records = [FileRecord.model_validate_json(v) for v in values if v is not None]
        records.sort(key=lambda r: self._score(r.uploaded_at), reverse=True)
        return records

    def delete(self, slug: str) -> bool:
        record = self.get(slug)
        if record is None:
            return False
        if not self.kv.delete(self._key(slug)):
            return False
        self.kv.zrem(self.INDEX_KEY, slug)
        self._delete_object(record.storage_locator)
        return True

    def _delete_object(self, url: str) -> None:
        try:
            self.objects.delete(url)
        except StorageError:
            logger.exception("Error deleting object %s", url)


def create_storage(settings: Settings, http_client: httpx.Client | None = None) -> Storage:
    if settings.storage_backend == "disk":
        return DiskStorage(Database(settings.db_url), settings.files_dir)
    if settings.storage_backend == "blob":
        return DatabaseBlobStorage(Database(settings.db_url))
    if settings.storage_backend == "kv":
        if not settings.kv_rest_url or not settings.object_store_url:
            raise ValueError("storage_backend=kv requires kv_rest_url and object_store_url")
        return KVObjectStorage(
            KVClient(settings.kv_rest_url, settings.kv_rest_token, client=http_client),
            ObjectStoreClient(settings.object_store_url, settings.object_store_token, client=http_client),
        )
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
