import datetime as dt
import logging

from .errors import SlugConflict, UnsupportedFileType
from .filetypes import detect_file_type
from .schemas import FileRecord
from .slugs import allocate_unique_slug, random_slug, slugify
from .storage import Storage

logger = logging.getLogger(__name__)

MAX_PUT_ATTEMPTS = 5


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class FileRegistry:
    """Assigns slugs to uploads and maps them to stored records."""

    def __init__(self, storage: Storage, slug_strategy: str = "filename"):
        self.storage = storage
        self.slug_strategy = slug_strategy

    def allocate_slug(self, filename: str) -> str:
        if self.slug_strategy == "random":
            return random_slug(self.storage.slug_exists)
        return allocate_unique_slug(slugify(filename), self.storage.slug_exists)

    def register(self, filename: str, content_type: str | None, data: bytes) -> FileRecord:
        file_type = detect_file_type(filename, content_type)
        if file_type is None:
            raise UnsupportedFileType()

        for attempt in range(1, MAX_PUT_ATTEMPTS + 1):
            slug = self.allocate_slug(filename)
            try:
                record = self.storage.put(
                    slug=slug,
                    original_name=filename,
                    file_type=file_type,
                    uploaded_at=utcnow(),
                    data=data,
                )
            except SlugConflict:
                logger.warning("Slug %s taken concurrently (attempt %d/%d)", slug, attempt, MAX_PUT_ATTEMPTS)
                continue
            logger.info("Stored %s as %s (%s, %d bytes)", filename, record.slug, file_type.value, record.file_size)
            return record

        raise SlugConflict(slug)

    def lookup(self, slug: str) -> FileRecord | None:
        return self.storage.get(slug)

    def list_all(self) -> list[FileRecord]:
        return self.storage.list()

    def read(self, record: FileRecord) -> bytes:
        return self.storage.read(record)

    def remove(self, slug: str) -> bool:
        removed = self.storage.delete(slug)
        if removed:
            logger.info("Deleted %s", slug)
        return removed
