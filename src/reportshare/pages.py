import datetime as dt
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from .api import get_registry
from .auth import is_authenticated
from .errors import WorkbookError
from .filetypes import FileType
from .registry import FileRegistry
from .spreadsheet import materialize, select_sheet

logger = logging.getLogger(__name__)

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_date(value: dt.datetime) -> str:
    return value.strftime("%b %d, %Y, %H:%M")


templates.env.filters["filesize"] = format_file_size
templates.env.filters["datefmt"] = format_date


def _safe_next(target: str | None) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/admin"


@router.get("/")
def index_page(request: Request):
    return templates.TemplateResponse(request, "index.html", {"authenticated": is_authenticated(request)})


@router.get("/login")
def login_page(request: Request, next: str | None = None):
    return templates.TemplateResponse(request, "login.html", {"next": _safe_next(next)})


@router.get("/admin")
def admin_page(request: Request, registry: FileRegistry = Depends(get_registry)):
    if not is_authenticated(request):
        return RedirectResponse(url="/login?next=/admin", status_code=303)
    try:
        records = registry.list_all()
    except Exception:
        logger.exception("Error listing files")
        raise HTTPException(status_code=500, detail="Failed to fetch files")
    return templates.TemplateResponse(request, "admin.html", {"records": records})


@router.get("/{slug}")
def viewer_page(
    request: Request,
    slug: str,
    sheet: str | None = None,
    registry: FileRegistry = Depends(get_registry),
):
    try:
        record = registry.lookup(slug)
    except Exception:
        logger.exception("Error looking up %s", slug)
        raise HTTPException(status_code=500, detail="Failed to load file")
    if record is None:
        return templates.TemplateResponse(request, "not_found.html", {"slug": slug}, status_code=404)

    context = {
        "record": record,
        "file_url": f"/api/files/{slug}",
        "is_excel": record.file_type == FileType.excel,
        "sheets": [],
        "active": 0,
        "error": None,
    }

    if context["is_excel"]:
        try:
            sheets = materialize(registry.read(record))
        except WorkbookError as e:
            context["error"] = str(e)
        except Exception:
            logger.exception("Error loading spreadsheet %s", slug)
            context["error"] = "Failed to load file"
        else:
            context["sheets"] = sheets
            context["active"] = select_sheet(sheets, sheet)

    return templates.TemplateResponse(request, "viewer.html", context)
