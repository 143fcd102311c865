import io
import json

import httpx
import openpyxl
import pytest
from fastapi.testclient import TestClient

from reportshare.config import Settings
from reportshare.main import create_app

ADMIN_PASSWORD = "s3cret-pass"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def build_xlsx(sheets: dict[str, list[list]]) -> bytes:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=str(tmp_path),
        files_dir=str(tmp_path / "files"),
        storage_backend="disk",
        admin_username="admin",
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def admin_client(client):
    resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client


@pytest.fixture
def quarterly_xlsx():
    return build_xlsx({"Q1": [["Name", "Amount"], ["Alice", 100]], "Q2": []})


class FakeRemoteStore:
    """In-memory REST key-value store + HTTP object store behind httpx.MockTransport."""

    KV_URL = "http://kv.test"
    OBJECTS_URL = "http://objects.test/bucket"

    def __init__(self):
        self.values: dict[str, str] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.objects: dict[str, bytes] = {}
        self.fail_object_deletes = False

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(self.KV_URL):
            return httpx.Response(200, json={"result": self.command(json.loads(request.content))})
        if request.method == "PUT":
            self.objects[url] = request.content
            return httpx.Response(200, json={"url": url})
        if request.method == "GET":
            if url not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, content=self.objects[url])
        if request.method == "DELETE":
            if self.fail_object_deletes:
                return httpx.Response(503, text="unavailable")
            self.objects.pop(url, None)
            return httpx.Response(200)
        return httpx.Response(405)

    def command(self, args: list[str]):
        name, *rest = args
        if name == "GET":
            return self.values.get(rest[0])
        if name == "MGET":
            return [self.values.get(k) for k in rest]
        if name == "SET":
            key, value = rest[0], rest[1]
            if "NX" in rest[2:] and key in self.values:
                return None
            self.values[key] = value
            return "OK"
        if name == "DEL":
            return 1 if self.values.pop(rest[0], None) is not None else 0
        if name == "ZADD":
            self.zsets.setdefault(rest[0], {})[rest[2]] = float(rest[1])
            return 1
        if name == "ZREM":
            return 1 if self.zsets.get(rest[0], {}).pop(rest[1], None) is not None else 0
        if name == "ZRANGE":
            members = self.zsets.get(rest[0], {})
            return [m for m, _ in sorted(members.items(), key=lambda kv: kv[1], reverse=True)]
        raise AssertionError(f"unexpected command {args}")


@pytest.fixture
def remote_store():
    return FakeRemoteStore()
