import pytest
from fastapi.testclient import TestClient

from backend.app.config import ServerSettings
from backend.app.main import app
from backend.app.routers.documents import get_settings
from backend.app.storage import DocStore, get_store


@pytest.fixture
def store(tmp_path):
    return DocStore(str(tmp_path / "storage"))


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _document(client, title="Treaty of Paris"):
    resp = client.post("/api/documents", json={"title": title, "imageUrl": "data:image/png;base64,AAAA"})
    assert resp.status_code == 201
    return resp.json()


def _annotation(doc_id, **fields):
    body = {"documentId": doc_id, "x": 10, "y": 10, "width": 100, "height": 50, "text": "note"}
    body.update(fields)
    return body


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_create_and_fetch_document_by_share_token(client):
    doc = _document(client)
    assert doc["shareToken"] and doc["id"] and doc["shareToken"] != doc["id"]
    assert doc["annotations"] == []
    fetched = client.get(f"/api/documents/{doc['shareToken']}").json()
    assert fetched["id"] == doc["id"]
    assert fetched["title"] == "Treaty of Paris"


def test_unknown_share_token_is_404(client):
    resp = client.get("/api/documents/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Document not found"}


def test_create_document_requires_title(client):
    resp = client.post("/api/documents", json={"imageUrl": "x"})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_annotations_come_back_newest_first(client):
    doc = _document(client)
    items = [
        _annotation(doc["id"], id="old", text="old", createdAt="2024-01-01T00:00:00Z"),
        _annotation(doc["id"], id="new", text="new", createdAt="2024-03-01T00:00:00Z"),
        _annotation(doc["id"], id="mid", text="mid", createdAt="2024-02-01T00:00:00Z"),
    ]
    assert client.post("/api/annotations/bulk", json={"documentId": doc["id"], "annotations": items}).json() == {"count": 3}
    fetched = client.get(f"/api/documents/{doc['shareToken']}").json()
    assert [a["id"] for a in fetched["annotations"]] == ["new", "mid", "old"]


def test_create_annotation_fills_defaults(client):
    doc = _document(client)
    resp = client.post("/api/annotations", json=_annotation(doc["id"]))
    assert resp.status_code == 201
    ann = resp.json()
    assert ann["category"] == "general"
    assert ann["color"] == "#3b82f6"
    assert ann["author"] == "Anonymous"
    assert ann["documentId"] == doc["id"]


def test_create_annotation_for_unknown_document_is_404(client):
    resp = client.post("/api/annotations", json=_annotation("missing"))
    assert resp.status_code == 404


def test_create_annotation_rejects_negative_size(client):
    doc = _document(client)
    resp = client.post("/api/annotations", json=_annotation(doc["id"], width=-5))
    assert resp.status_code == 400


def test_patch_and_delete_annotation(client, store):
    doc = _document(client)
    ann = client.post("/api/annotations", json=_annotation(doc["id"])).json()
    resp = client.patch(f"/api/annotations/{ann['id']}", json={"text": "Signed 1783", "category": "context"})
    assert resp.status_code == 200
    assert resp.json()["text"] == "Signed 1783"
    assert store.get_annotation(ann["id"]).category.value == "context"
    assert client.delete(f"/api/annotations/{ann['id']}").status_code == 204
    assert store.get_annotation(ann["id"]) is None


def test_patch_or_delete_unknown_annotation_is_404(client):
    assert client.patch("/api/annotations/ghost", json={"text": "x"}).status_code == 404
    resp = client.delete("/api/annotations/ghost")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Annotation not found"}


def test_bulk_sync_replaces_everything(client):
    doc = _document(client)
    client.post("/api/annotations", json=_annotation(doc["id"], text="server side"))
    items = [_annotation(doc["id"], id="tmp-abc", text="a"), _annotation(doc["id"], text="b")]
    assert client.post("/api/annotations/bulk", json={"documentId": doc["id"], "annotations": items}).json() == {"count": 2}
    fetched = client.get(f"/api/documents/{doc['shareToken']}").json()
    assert sorted(a["text"] for a in fetched["annotations"]) == ["a", "b"]
    assert "tmp-abc" in {a["id"] for a in fetched["annotations"]}

    # an empty list clears the document
    resp = client.post("/api/annotations/bulk", json={"documentId": doc["id"], "annotations": []})
    assert resp.json() == {"count": 0}
    assert client.get(f"/api/documents/{doc['shareToken']}").json()["annotations"] == []


def test_bulk_sync_rejects_duplicate_ids(client):
    doc = _document(client)
    items = [_annotation(doc["id"], id="dup"), _annotation(doc["id"], id="dup")]
    resp = client.post("/api/annotations/bulk", json={"documentId": doc["id"], "annotations": items})
    assert resp.status_code == 400


def test_bulk_sync_unknown_document_is_404(client):
    resp = client.post("/api/annotations/bulk", json={"documentId": "missing", "annotations": []})
    assert resp.status_code == 404


def test_upload_returns_data_url(client):
    resp = client.post("/api/documents/upload", files={"file": ("scan.png", b"\x89PNG fake", "image/png")})
    assert resp.status_code == 200
    assert resp.json()["imageUrl"] == "data:image/png;base64,iVBORyBmYWtl"


def test_upload_without_file_is_400(client):
    resp = client.post("/api/documents/upload")
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}


def test_upload_over_limit_is_413(client):
    app.dependency_overrides[get_settings] = lambda: ServerSettings(max_upload_mb=0.001)
    resp = client.post("/api/documents/upload", files={"file": ("big.png", b"x" * 2048, "image/png")})
    assert resp.status_code == 413


def test_store_survives_restart(client, store):
    doc = _document(client)
    client.post("/api/annotations", json=_annotation(doc["id"]))
    reopened = DocStore(store.base)
    again = reopened.get_by_token(doc["shareToken"])
    assert again is not None
    assert len(again.annotations) == 1
