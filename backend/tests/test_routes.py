from datetime import timedelta
from urllib.parse import urlsplit

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import update

from app.config import Settings
from app.main import create_app
from app.models.folder import Folder
from app.services.sharing_service import utcnow

JANE = {"X-User-Id": "user_jane", "X-User-First-Name": "Jane", "X-User-Last-Name": "Doe"}
BOB = {"X-User-Id": "user_bob", "X-User-First-Name": "Bob", "X-User-Last-Name": "Smith"}


@pytest_asyncio.fixture
async def api_app(tmp_path):
    settings = Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        FILE_STORAGE_TYPE="local",
        FILE_STORAGE_PATH=str(tmp_path / "blobs"),
        PUBLIC_BASE_URL="http://testserver",
        DEFAULT_SHARE_ORIGIN="https://drive.example",
    )
    application = create_app(settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(api_app):
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def _mkdir(client, name, parent_id=None, headers=JANE):
    path = f"/api/folders/{parent_id}" if parent_id else "/api/folders"
    resp = await client.post(path, json={"folderName": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _upload(client, folder_id, name, content, headers=JANE):
    resp = await client.post(
        f"/api/folders/{folder_id}/files",
        files={"file": (name, content, "application/pdf")},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.json() == {"status": "ok", "database": "connected"}


@pytest.mark.asyncio
async def test_requires_principal(client):
    resp = await client.get("/api/folders")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_root_folder_on_first_access(client):
    resp = await client.get("/api/folders", headers=JANE)
    assert resp.status_code == 200
    root = resp.json()
    assert root["isRoot"] is True
    assert root["folderName"] == "root_user_jane"
    assert root["displayName"] == "JaneDoe"
    assert root["parentFolderId"] is None

    again = await client.get("/api/user/root-folder", headers=JANE)
    assert again.json() == {"rootFolderId": root["id"]}


@pytest.mark.asyncio
async def test_create_folders_and_read_tree(client):
    reports = await _mkdir(client, "Reports")
    q2 = await _mkdir(client, "Q2", reports["id"])
    await _upload(client, q2["id"], "summary.pdf", b"%PDF")

    root = (await client.get("/api/folders", headers=JANE)).json()
    assert [f["id"] for f in root["subfolders"]] == [reports["id"]]

    tree = (await client.get("/api/folders?recursive=all", headers=JANE)).json()
    node = tree["subfolders"][0]["subfolders"][0]
    assert node["id"] == q2["id"]
    assert node["files"][0]["fileName"] == "summary.pdf"

    crumbs = (await client.get(f"/api/folders/{q2['id']}/ancestors", headers=JANE)).json()
    assert [a["name"] for a in crumbs["ancestors"]] == ["JaneDoe", "Reports", "Q2"]
    root_crumbs = (await client.get("/api/folders/root/ancestors", headers=JANE)).json()
    assert [a["id"] for a in root_crumbs["ancestors"]] == [root["id"]]


@pytest.mark.asyncio
async def test_duplicate_and_invalid_folder_names(client):
    await _mkdir(client, "Reports")

    dup = await client.post("/api/folders", json={"folderName": "reports"}, headers=JANE)
    assert dup.status_code == 409
    bad = await client.post("/api/folders", json={"folderName": "a/b"}, headers=JANE)
    assert bad.status_code == 400
    empty = await client.post("/api/folders", json={"folderName": ""}, headers=JANE)
    assert empty.status_code == 422


@pytest.mark.asyncio
async def test_other_principals_cannot_see_folders(client):
    reports = await _mkdir(client, "Reports")

    resp = await client.get(f"/api/folders/{reports['id']}", headers=BOB)
    assert resp.status_code == 404
    resp = await client.delete(f"/api/folders/{reports['id']}", headers=BOB)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_file_url_download_and_delete(client):
    reports = await _mkdir(client, "Reports")
    uploaded = await _upload(client, reports["id"], "q1.pdf", b"%PDF-q1")

    resp = await client.get(f"/api/files/{uploaded['id']}", headers=JANE)
    assert resp.status_code == 200
    url = urlsplit(resp.json()["url"])
    download = await client.get(f"{url.path}?{url.query}")
    assert download.status_code == 200
    assert download.content == b"%PDF-q1"
    assert 'filename="q1.pdf"' in download.headers["content-disposition"]

    tampered = await client.get(f"{url.path}?{url.query[:-4]}beef")
    assert tampered.status_code == 403

    assert (await client.get(f"/api/files/{uploaded['id']}", headers=BOB)).status_code == 404
    deleted = await client.delete(f"/api/files/{uploaded['id']}", headers=JANE)
    assert deleted.json() == {"message": "deletion successful!"}
    assert (await client.get(f"/api/files/{uploaded['id']}", headers=JANE)).status_code == 404


@pytest.mark.asyncio
async def test_share_validation(client):
    reports = await _mkdir(client, "Reports")

    resp = await client.post(f"/api/folders/{reports['id']}/share", json={"hours": 0}, headers=JANE)
    assert resp.status_code == 400
    resp = await client.post(f"/api/folders/{reports['id']}/share", json={}, headers=JANE)
    assert resp.status_code == 400
    resp = await client.post(f"/api/folders/{reports['id']}/share", json={"hours": 1e9}, headers=JANE)
    assert resp.status_code == 400

    # JSON non-finite literals are rejected by the request schema
    for literal in (b"NaN", b"Infinity", b"-Infinity"):
        resp = await client.post(
            f"/api/folders/{reports['id']}/share",
            content=b'{"hours": ' + literal + b"}",
            headers={**JANE, "Content-Type": "application/json"},
        )
        assert resp.status_code == 422, literal

    folder = (await client.get(f"/api/folders/{reports['id']}", headers=JANE)).json()
    assert folder["shared"] is False


@pytest.mark.asyncio
async def test_shared_folder_flow(client):
    reports = await _mkdir(client, "Reports")
    private = await _mkdir(client, "Private")
    q1 = await _upload(client, reports["id"], "q1.pdf", b"%PDF-q1")
    secret = await _upload(client, private["id"], "secret.pdf", b"%PDF-s")

    resp = await client.post(f"/api/folders/{reports['id']}/share", json={"hours": 24}, headers=JANE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Successful"
    assert body["url"].startswith("https://drive.example/shared/folder/")
    token = body["url"].rsplit("/", 1)[-1]

    # Anonymous access through the token
    shared = await client.get(f"/api/shared/folder/{token}")
    assert shared.status_code == 200
    assert [f["fileName"] for f in shared.json()["files"]] == ["q1.pdf"]

    granted = await client.get(f"/api/shared/file/{q1['id']}/{token}")
    assert granted.status_code == 200
    assert granted.json()["message"] == "File access granted"
    assert granted.json()["fileName"] == "q1.pdf"

    denied = await client.get(f"/api/shared/file/{secret['id']}/{token}")
    assert denied.status_code == 403

    unknown = await client.get(f"/api/shared/file/{q1['id']}/not-a-token")
    assert unknown.status_code == 404
    assert (await client.get("/api/shared/folder/not-a-token")).status_code == 403


@pytest.mark.asyncio
async def test_expired_share_token_is_refused(api_app, client):
    reports = await _mkdir(client, "Reports")
    q1 = await _upload(client, reports["id"], "q1.pdf", b"%PDF-q1")
    resp = await client.post(f"/api/folders/{reports['id']}/share", json={"hours": 1}, headers=JANE)
    token = resp.json()["url"].rsplit("/", 1)[-1]

    async with api_app.state.session_factory() as db:
        await db.execute(
            update(Folder)
            .where(Folder.share_token == token)
            .values(expires_at=utcnow() - timedelta(seconds=1))
        )
        await db.commit()

    assert (await client.get(f"/api/shared/folder/{token}")).status_code == 403
    assert (await client.get(f"/api/shared/file/{q1['id']}/{token}")).status_code == 403


@pytest.mark.asyncio
async def test_share_file_extends(client):
    root = (await client.get("/api/folders", headers=JANE)).json()
    uploaded = await _upload(client, root["id"], "a.pdf", b"a")

    long = await client.post(f"/api/files/{uploaded['id']}/share", json={"hours": 24}, headers=JANE)
    short = await client.post(f"/api/files/{uploaded['id']}/share", json={"hours": 1}, headers=JANE)

    assert long.status_code == 200
    assert short.json()["expiresAt"] == long.json()["expiresAt"]


@pytest.mark.asyncio
async def test_jane_doe_scenario(client):
    root = (await client.get("/api/folders", headers=JANE)).json()
    assert root["displayName"] == "JaneDoe"
    assert root["isRoot"] is True

    reports = await _mkdir(client, "Reports")
    assert reports["parentFolderId"] == root["id"]
    q1 = await _upload(client, reports["id"], "q1.pdf", b"%PDF-q1")
    assert q1["parentFolderId"] == reports["id"]

    share = await client.post(f"/api/folders/{reports['id']}/share", json={"hours": 24}, headers=JANE)
    token = share.json()["url"].rsplit("/", 1)[-1]
    granted = await client.get(f"/api/shared/file/{q1['id']}/{token}")
    assert granted.status_code == 200
    url = urlsplit(granted.json()["url"])
    expires = int(dict(p.split("=", 1) for p in url.query.split("&"))["expires"])
    assert expires - utcnow().timestamp() <= 24 * 3600 + 5

    resp = await client.delete(f"/api/folders/{root['id']}", headers=JANE)
    assert resp.status_code == 200
    assert (await client.get(f"/api/folders/{reports['id']}", headers=JANE)).status_code == 404
    assert (await client.get(f"/api/files/{q1['id']}", headers=JANE)).status_code == 404
