import datetime as dt

from pydantic import BaseModel, Field

from .filetypes import FileType


class FileRecord(BaseModel):
    slug: str
    original_name: str
    uploaded_at: dt.datetime
    file_size: int
    file_type: FileType = FileType.pdf
    storage_locator: str


class FileMeta(BaseModel):
    slug: str
    original_name: str
    uploaded_at: dt.datetime
    file_size: int
    file_type: FileType
    url: str


class UploadResponse(BaseModel):
    success: bool = True
    slug: str
    url: str
    file_type: FileType


class DeleteResponse(BaseModel):
    success: bool = True


class SheetOut(BaseModel):
    name: str
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class SheetsResponse(BaseModel):
    slug: str
    active: int = 0
    sheets: list[SheetOut]


class LoginRequest(BaseModel):
    username: str
    password: str
