import datetime as dt

from sqlalchemy import BigInteger, DateTime, Enum, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base
from .filetypes import FileType


class StoredFile(Base):
    __tablename__ = "file_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    uploaded_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, index=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    file_type: Mapped[FileType] = mapped_column(
        Enum(FileType, name="file_type", native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=FileType.pdf,
    )
    storage_locator: Mapped[str] = mapped_column(String(1000), nullable=False)

    # only populated by the blob backend
    file_data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True, deferred=True)
