from __future__ import annotations

from fastapi.testclient import TestClient

FLIGHT_TEXT = "LATAM LA3301 FLN-GRU 02/04/2026 R$ 1.299,90"


def _client(**collaborator_kwargs) -> TestClient:
    from trip_importer.main import create_app
    from trip_importer.modules.imports.service import ImportCollaborators

    collaborators = ImportCollaborators(
        extract_structured=lambda _text, _file_name: None, **collaborator_kwargs
    )
    return TestClient(create_app(collaborators=collaborators))


def _upload(client: TestClient, *files: tuple[str, bytes, str]):
    return client.post(
        "/api/imports",
        files=[("uploads", (name, body, ctype)) for name, body, ctype in files],
    )


def test_healthz_and_request_id():
    client = _client()
    resp = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["x-request-id"] == "req-123"


def test_upload_rejects_disallowed_extensions_before_enqueueing():
    client = _client()
    resp = _upload(
        client,
        ("voo.txt", FLIGHT_TEXT.encode(), "text/plain"),
        ("planilha.xlsx", b"PK\x03\x04", "application/octet-stream"),
    )
    assert resp.status_code == 400
    assert "planilha.xlsx" in resp.json()["detail"]
    assert client.get("/api/imports").json() == []


def test_upload_run_review_and_confirm_flow():
    client = _client()

    uploaded = _upload(client, ("voo.txt", FLIGHT_TEXT.encode(), "text/plain"))
    assert uploaded.status_code == 200
    item_id = uploaded.json()[0]["id"]
    assert uploaded.json()[0]["status"] == "pending"
    assert uploaded.json()[0]["type_label"] == "A definir"

    run = client.post("/api/imports/run")
    assert run.status_code == 200
    body = run.json()
    assert body["remaining"] == 0
    processed = body["processed"][0]
    assert processed["id"] == item_id
    assert processed["status"] == "needs_confirmation"
    assert processed["identified_type"] == "voo"
    assert processed["type_label"] == "Voo"
    assert processed["review"]["voo"]["numero"] == "LA3301"
    assert processed["extraction_method"] == "native"

    patched = client.patch(
        f"/api/imports/{item_id}/review", json={"voo": {"origem": "", "destino": "GIG"}}
    )
    assert patched.status_code == 200
    assert patched.json()["missing_fields"] == ["voo.origem"]
    assert patched.json()["missing_field_labels"] == ["Origem do voo"]

    blocked = client.post(f"/api/imports/{item_id}/confirm")
    assert blocked.status_code == 200
    assert blocked.json()["status"] == "needs_confirmation"

    client.patch(f"/api/imports/{item_id}/review", json={"voo": {"origem": "FLN"}})
    saved = client.post(f"/api/imports/{item_id}/confirm")
    assert saved.status_code == 200
    out = saved.json()
    assert out["status"] == "saved"
    assert out["document_id"]
    assert out["summary"]["title"] == "LA3301"
    assert out["summary"]["amount"] == 1299.9

    fetched = client.get(f"/api/imports/{item_id}")
    assert fetched.json()["status"] == "saved"


def test_invalid_transitions_are_conflicts():
    client = _client()
    item_id = _upload(client, ("voo.txt", FLIGHT_TEXT.encode(), "text/plain")).json()[0]["id"]

    assert client.post(f"/api/imports/{item_id}/confirm").status_code == 409
    assert client.patch(f"/api/imports/{item_id}/review", json={}).status_code == 409
    assert client.post(f"/api/imports/{item_id}/reprocess").status_code == 409


def test_unknown_item_is_404():
    client = _client()
    assert client.get("/api/imports/does-not-exist").status_code == 404
    assert client.post("/api/imports/does-not-exist/confirm").status_code == 404


def test_run_passes_trip_destination_to_fallback():
    client = _client()
    _upload(
        client,
        ("hotel.txt", "Hotel Central check-in amanhã, quarto duplo".encode(), "text/plain"),
    )

    processed = client.post("/api/imports/run", json={"trip_destination": "Lisboa"}).json()[
        "processed"
    ][0]

    assert processed["review"]["hospedagem"]["localizacao"] == "Lisboa"
    assert "Texto insuficiente para extração automática." not in processed["warnings"]
    assert processed["user_warnings"]
