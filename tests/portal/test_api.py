"""HTTP 接口测试：认证、统一响应结构与各路由的端到端行为。"""

import asyncio

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.enums import RoleEnum
from app.packages.portal.services.change_signal import change_signal

API = "/api/v1"


def _root_id(client, headers, service_id):
    resp = client.get(f"{API}/folders", params={"service_id": service_id}, headers=headers)
    assert resp.status_code == 200
    return resp.json()["data"][0]["id"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers.get("X-Request-ID")


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert resp.headers["X-Request-ID"] == "trace-123"


def test_requests_without_token_are_rejected(client, acme):
    resp = client.get(f"{API}/folders", params={"service_id": acme["legal"].id})
    assert resp.status_code == 401
    assert resp.json()["code"] == 401

    resp = client.get(f"{API}/folders", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_folder_crud_over_http(client, acme, auth_headers):
    headers = auth_headers(RoleEnum.AGENT, "legal")
    root_id = _root_id(client, headers, acme["legal"].id)

    created = client.post(f"{API}/folders", json={"name": "Contracts", "parent_id": root_id}, headers=headers)
    assert created.status_code == 200
    body = created.json()
    assert body["code"] == 200
    folder_id = body["data"]["id"]
    assert body["data"]["storage_path"] == "enterprises/acme/legal/contracts"

    children = client.get(f"{API}/folders", params={"parent_id": root_id}, headers=headers).json()["data"]
    assert [c["name"] for c in children] == ["Contracts"]

    renamed = client.patch(f"{API}/folders/{folder_id}", json={"name": "Agreements"}, headers=headers)
    assert renamed.json()["data"]["name"] == "Agreements"

    bad_move = client.post(f"{API}/folders/{folder_id}/move", json={"parent_id": folder_id}, headers=headers)
    assert bad_move.status_code == 422
    assert bad_move.json()["code"] == 422

    deleted = client.delete(f"{API}/folders/{folder_id}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"{API}/folders/{folder_id}", headers=headers).status_code == 404


def test_listing_folders_requires_a_context(client, auth_headers):
    resp = client.get(f"{API}/folders", headers=auth_headers(RoleEnum.ADMIN, None))
    assert resp.status_code == 422


def test_agent_cannot_reach_other_service(client, acme, auth_headers):
    legal = auth_headers(RoleEnum.AGENT, "legal", user_id=1)
    sales = auth_headers(RoleEnum.AGENT, "sales", user_id=2)
    root_id = _root_id(client, legal, acme["legal"].id)
    folder_id = client.post(
        f"{API}/folders", json={"name": "Contracts", "parent_id": root_id}, headers=legal
    ).json()["data"]["id"]

    assert client.get(f"{API}/folders/{folder_id}", headers=sales).status_code == 403
    resp = client.post(f"{API}/folders", json={"name": "Intrusion", "parent_id": root_id}, headers=sales)
    assert resp.status_code == 403


def test_document_upload_list_download(client, acme, auth_headers, storage):
    headers = auth_headers(RoleEnum.AGENT, "legal")
    root_id = _root_id(client, headers, acme["legal"].id)

    resp = client.post(
        f"{API}/documents",
        data={"folder_id": str(root_id)},
        files={"file": ("Q1 Report.pdf", b"%PDF-1.4 body", "application/pdf")},
        headers=headers,
    )
    assert resp.status_code == 200
    doc = resp.json()["data"]
    assert doc["name"] == "Q1 Report.pdf"
    assert doc["size_bytes"] == len(b"%PDF-1.4 body")
    assert storage.exists("enterprises/acme/legal/q1-report.pdf")

    page = client.get(f"{API}/documents", params={"folder_id": root_id}, headers=headers).json()["data"]
    assert page["total"] == 1
    assert page["items"][0]["id"] == doc["id"]

    count = client.get(
        f"{API}/documents", params={"service_id": acme["legal"].id, "count_only": True}, headers=headers
    ).json()["data"]
    assert count["total"] == 1
    assert count["items"] == []

    recent = client.get(f"{API}/documents/recent", headers=headers).json()["data"]
    assert [d["id"] for d in recent] == [doc["id"]]

    download = client.get(f"{API}/documents/{doc['id']}/download", headers=headers)
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 body"
    assert download.headers["content-type"].startswith("application/pdf")
    assert "Q1%20Report.pdf" in download.headers["content-disposition"]

    updated = client.patch(f"{API}/documents/{doc['id']}", json={"name": "Q1 Final.pdf"}, headers=headers)
    assert updated.json()["data"]["name"] == "Q1 Final.pdf"
    assert storage.exists("enterprises/acme/legal/q1-final.pdf")

    assert client.delete(f"{API}/documents/{doc['id']}", headers=headers).status_code == 200
    assert client.get(f"{API}/documents/{doc['id']}", headers=headers).status_code == 404


def test_upload_without_target_is_rejected(client, auth_headers):
    resp = client.post(
        f"{API}/documents",
        files={"file": ("a.txt", b"a", "text/plain")},
        headers=auth_headers(RoleEnum.ADMIN, None),
    )
    assert resp.status_code == 422


def test_shared_folder_admin_routes(client, acme, auth_headers):
    admin = auth_headers(RoleEnum.ADMIN, None, user_id=5)
    agent = auth_headers(RoleEnum.AGENT, "sales", user_id=6)
    payload = {
        "name": "Templates",
        "host_service_id": acme["legal"].id,
        "visibility": "services",
        "services": [acme["sales"].id],
    }

    assert client.post(f"{API}/admin/shared-folders", json=payload, headers=agent).status_code == 403

    created = client.post(f"{API}/admin/shared-folders", json=payload, headers=admin)
    assert created.status_code == 200
    share = created.json()["data"]
    assert share["services"] == [acme["sales"].id]

    visible = client.get(f"{API}/shared-folders/visible", headers=agent).json()["data"]
    assert [s["id"] for s in visible] == [share["id"]]
    assert client.get(f"{API}/folders/{share['folder_id']}", headers=agent).status_code == 200

    patched = client.patch(
        f"{API}/admin/shared-folders/{share['id']}", json={"services": []}, headers=admin
    )
    assert patched.json()["data"]["services"] == []
    assert client.get(f"{API}/shared-folders/visible", headers=agent).json()["data"] == []
    assert client.get(f"{API}/folders/{share['folder_id']}", headers=agent).status_code == 403

    bad = client.patch(f"{API}/admin/shared-folders/{share['id']}", json={"visibility": "public"}, headers=admin)
    assert bad.status_code == 422

    assert client.delete(f"{API}/admin/shared-folders/{share['id']}", headers=admin).status_code == 200
    assert client.get(f"{API}/folders/{share['folder_id']}", headers=admin).status_code == 404


def test_link_existing_folder(client, acme, auth_headers):
    admin = auth_headers(RoleEnum.ADMIN, None)
    root_id = _root_id(client, admin, acme["legal"].id)
    folder_id = client.post(
        f"{API}/folders", json={"name": "Policies", "parent_id": root_id}, headers=admin
    ).json()["data"]["id"]

    linked = client.post(
        f"{API}/admin/shared-folders/link", json={"folder_id": folder_id, "visibility": "enterprise"}, headers=admin
    )
    assert linked.status_code == 200
    assert linked.json()["data"]["folder_id"] == folder_id


def test_event_snapshots(client, acme, auth_headers):
    headers = auth_headers(RoleEnum.ADMIN, None)
    before = client.get(f"{API}/events/folders", headers=headers).json()["data"]["seq"]
    _root_id(client, headers, acme["legal"].id)
    after = client.get(f"{API}/events/folders", headers=headers).json()["data"]
    assert after["seq"] == before + 1
    assert after["channel"] == "folders"

    assert client.get(f"{API}/events/unknown", headers=headers).status_code == 404
    assert client.get(f"{API}/events/folders").status_code == 401


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_event_stream_reads_counters_off_the_event_loop(client, acme, auth_headers, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "events_stream_timeout_seconds", 0.3)
    monkeypatch.setattr(settings, "events_poll_interval_seconds", 0.05)
    calls = []

    def fake_sequence(channel):
        calls.append(_on_event_loop())
        return 1

    def fake_snapshot(channel):
        calls.append(_on_event_loop())
        return {"seq": 7, "payload": {"type": "created"}}

    monkeypatch.setattr(change_signal, "sequence", fake_sequence)
    monkeypatch.setattr(change_signal, "snapshot", fake_snapshot)

    headers = auth_headers(RoleEnum.ADMIN, None)
    with client.stream("GET", f"{API}/events/documents/stream", headers=headers) as resp:
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        body = "".join(resp.iter_text())

    assert "id: 1" in body
    assert "event: documents" in body
    assert "id: 7" in body
    assert calls and not any(calls)
