import enum
from pathlib import PurePosixPath

PDF_MIME = "application/pdf"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME = "application/vnd.ms-excel"
OCTET_STREAM = "application/octet-stream"

EXCEL_MIME_TYPES = (XLSX_MIME, XLS_MIME)
EXCEL_EXTENSIONS = (".xlsx", ".xls")

_CONTENT_TYPES = {
    ".pdf": PDF_MIME,
    ".xlsx": XLSX_MIME,
    ".xls": XLS_MIME,
}


class FileType(str, enum.Enum):
    pdf = "pdf"
    excel = "excel"


def is_pdf(filename: str, content_type: str | None) -> bool:
    return content_type == PDF_MIME or filename.lower().endswith(".pdf")


def is_excel(filename: str, content_type: str | None) -> bool:
    return content_type in EXCEL_MIME_TYPES or filename.lower().endswith(EXCEL_EXTENSIONS)


def detect_file_type(filename: str, content_type: str | None) -> FileType | None:
    if is_pdf(filename, content_type):
        return FileType.pdf
    if is_excel(filename, content_type):
        return FileType.excel
    return None


def extension_for(filename: str, file_type: FileType) -> str:
    name = filename.lower()
    for ext in (".xlsx", ".xls", ".pdf"):
        if name.endswith(ext):
            return ext
    return ".pdf" if file_type == FileType.pdf else ".xlsx"


def content_type_for(name: str) -> str:
    return _CONTENT_TYPES.get(PurePosixPath(name.lower()).suffix, OCTET_STREAM)
