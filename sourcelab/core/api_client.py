from __future__ import annotations
from typing import Any, Dict, List, Optional
from pathlib import Path
import logging
import mimetypes
import requests

from .annotations import Document
from .config import ClientSettings
from .errors import NotFound, TransportFailure, ValidationFailure

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class ApiClient:
    """REST client for the document/annotation server (plain requests, no SDK).

    ``session`` may be any object with a requests-style ``request(method, url, ...)``
    method; tests hand in the FastAPI ``TestClient``.
    """

    def __init__(self, base_url: Optional[str] = None, session: Any = None, timeout: Optional[float] = None):
        settings = ClientSettings.from_env()
        self.base_url = (base_url if base_url is not None else settings.api_url).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.session = session if session is not None else requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any):
        url = f"{self.base_url}/api{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportFailure(f"{method} {path} network error: {e}")
        if resp.status_code == 404:
            raise NotFound(_error_message(resp) or f"{path} not found")
        if resp.status_code >= 400:
            raise TransportFailure(f"{method} {path} failed with {resp.status_code}: {_error_message(resp)}", resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise TransportFailure(f"{method} {path} returned invalid JSON: {e}")

    # ---- documents ----
    def create_document(self, title: str, image_url: str, description: Optional[str] = None) -> Document:
        body: Dict[str, Any] = {"title": title, "imageUrl": image_url}
        if description:
            body["description"] = description
        return Document.from_wire(self._request("POST", "/documents", json=body))

    def get_document(self, share_token: str) -> Document:
        try:
            data = self._request("GET", f"/documents/{share_token}")
        except NotFound:
            raise NotFound("Document not found")
        return Document.from_wire(data)

    def upload_image(self, path: str) -> str:
        p = Path(path)
        if not p.is_file():
            raise ValidationFailure(f"No file to upload: {path}")
        size = p.stat().st_size
        if size > MAX_UPLOAD_BYTES:
            raise ValidationFailure(f"File is {size} bytes; the limit is {MAX_UPLOAD_BYTES}")
        mime = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        with open(p, 'rb') as f:
            data = self._request("POST", "/documents/upload", files={"file": (p.name, f.read(), mime)})
        return data["imageUrl"]

    # ---- annotations ----
    def create_annotation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/annotations", json=payload)

    def update_annotation(self, annotation_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/annotations/{annotation_id}", json=patch)

    def delete_annotation(self, annotation_id: str) -> None:
        self._request("DELETE", f"/annotations/{annotation_id}")

    def sync_annotations(self, document_id: str, annotations: List[Dict[str, Any]]) -> int:
        data = self._request("POST", "/annotations/bulk", json={"documentId": document_id, "annotations": annotations})
        return int(data["count"])

    def health(self) -> Dict[str, Any]:
        url = f"{self.base_url}/health"
        try:
            resp = self.session.request("GET", url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailure(f"health check network error: {e}")
        if resp.status_code != 200:
            raise TransportFailure(f"health check failed with {resp.status_code}", resp.status_code)
        return resp.json()


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:400]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return resp.text[:400]
