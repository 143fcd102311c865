import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from .auth import check_credentials, clear_session_cookie, get_settings, require_admin, set_session_cookie
from .errors import UnsupportedFileType, WorkbookError
from .filetypes import FileType, content_type_for, detect_file_type
from .registry import FileRegistry
from .schemas import (
    DeleteResponse,
    FileMeta,
    FileRecord,
    LoginRequest,
    SheetOut,
    SheetsResponse,
    UploadResponse,
)
from .spreadsheet import materialize, select_sheet

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry(request: Request) -> FileRegistry:
    return request.app.state.registry


def _file_meta(r: FileRecord) -> FileMeta:
    return FileMeta(
        slug=r.slug,
        original_name=r.original_name,
        uploaded_at=r.uploaded_at,
        file_size=r.file_size,
        file_type=r.file_type,
        url=f"/{r.slug}",
    )


def _clean_filename(name: str) -> str:
    return name.replace("\\", "/").rsplit("/", 1)[-1].strip()


def content_disposition(filename: str, disposition: str = "inline") -> str:
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    value = f'{disposition}; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename)}"
    return value


def _load_record(registry: FileRegistry, slug: str) -> FileRecord:
    try:
        record = registry.lookup(slug)
    except Exception:
        logger.exception("Error looking up %s", slug)
        raise HTTPException(status_code=500, detail="Failed to serve file")
    if not record:
        raise HTTPException(status_code=404, detail="File not found")
    return record


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/api/auth/login")
async def login(request: Request):
    settings = get_settings(request)
    try:
        creds = LoginRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse({"success": False, "error": "Invalid request"}, status_code=400)

    if not check_credentials(settings, creds.username, creds.password):
        logger.warning("Failed admin login for %r", creds.username)
        return JSONResponse({"success": False, "error": "Invalid credentials"}, status_code=401)

    response = JSONResponse({"success": True})
    set_session_cookie(response, settings)
    return response


@router.post("/api/auth/logout")
def logout(request: Request):
    response = JSONResponse({"success": True})
    clear_session_cookie(response, get_settings(request))
    return response


@router.post("/api/upload", response_model=UploadResponse, dependencies=[Depends(require_admin)])
async def upload_file(
    file: UploadFile | None = File(None),
    registry: FileRegistry = Depends(get_registry),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    filename = _clean_filename(file.filename)
    if detect_file_type(filename, file.content_type) is None:
        raise HTTPException(status_code=400, detail=str(UnsupportedFileType()))

    data = await file.read()
    await file.close()

    try:
        record = registry.register(filename, file.content_type, data)
    except UnsupportedFileType as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Upload error for %r", filename)
        raise HTTPException(status_code=500, detail="Failed to upload file")

    return UploadResponse(slug=record.slug, url=f"/{record.slug}", file_type=record.file_type)


@router.get("/api/files", response_model=list[FileMeta], dependencies=[Depends(require_admin)])
def list_files(registry: FileRegistry = Depends(get_registry)):
    try:
        records = registry.list_all()
    except Exception:
        logger.exception("Error fetching files")
        raise HTTPException(status_code=500, detail="Failed to fetch files")
    return [_file_meta(r) for r in records]


@router.get("/api/files/{slug}")
def serve_file(slug: str, download: bool = False, registry: FileRegistry = Depends(get_registry)):
    record = _load_record(registry, slug)
    try:
        data = registry.read(record)
    except Exception:
        logger.exception("Error serving %s", slug)
        raise HTTPException(status_code=500, detail="Failed to serve file")

    return Response(
        content=data,
        media_type=content_type_for(record.storage_locator),
        headers={
            "Content-Disposition": content_disposition(
                record.original_name, "attachment" if download else "inline"
            )
        },
    )


@router.get("/api/files/{slug}/sheets", response_model=SheetsResponse)
def file_sheets(slug: str, sheet: str | None = None, registry: FileRegistry = Depends(get_registry)):
    record = _load_record(registry, slug)
    if record.file_type != FileType.excel:
        raise HTTPException(status_code=409, detail="File is not a spreadsheet")

    try:
        data = registry.read(record)
    except Exception:
        logger.exception("Error serving %s", slug)
        raise HTTPException(status_code=500, detail="Failed to serve file")

    try:
        sheets = materialize(data)
    except WorkbookError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SheetsResponse(
        slug=slug,
        active=select_sheet(sheets, sheet),
        sheets=[SheetOut(name=s.name, headers=s.headers, rows=s.rows) for s in sheets],
    )


@router.delete("/api/files/{slug}", response_model=DeleteResponse, dependencies=[Depends(require_admin)])
def delete_file(slug: str, registry: FileRegistry = Depends(get_registry)):
    try:
        removed = registry.remove(slug)
    except Exception:
        logger.exception("Error deleting %s", slug)
        raise HTTPException(status_code=500, detail="Failed to delete file")
    if not removed:
        raise HTTPException(status_code=404, detail="File not found")
    return DeleteResponse()
