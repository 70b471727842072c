# sync/client.py
import logging
from dataclasses import dataclass

import requests

from settings import get_settings

logger = logging.getLogger(__name__)

ENTITIES = ("accounts", "contacts", "estimates", "jobsites")


class BackendError(RuntimeError):
    """Raised when a backend call fails or the backend reports success: false."""

    def __init__(self, entity: str, message: str, status_code: int | None = None):
        super().__init__(f"{entity}: {message}")
        self.entity = entity
        self.status_code = status_code


@dataclass
class UpsertResult:
    created: int = 0
    updated: int = 0
    total: int = 0


class BackendClient:
    """Thin JSON client for the per-entity fetch and bulk_upsert endpoints."""

    def __init__(self, base_url: str, *, token: str | None = None, timeout: int = 30,
                 session: requests.Session | None = None) -> None:
        if not base_url:
            raise ValueError("Backend base URL is required (set CRM_API_BASE_URL)")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    @classmethod
    def from_settings(cls, settings=None, session=None) -> "BackendClient":
        settings = settings or get_settings()
        return cls(settings.api_base_url, token=settings.api_token,
                   timeout=settings.api_timeout, session=session)

    def _url(self, entity: str) -> str:
        return f"{self.base_url}/{entity}"

    def _payload(self, entity: str, response) -> dict:
        try:
            data = response.json()
        except ValueError:
            raise BackendError(entity, f"HTTP {response.status_code}: response was not JSON",
                               response.status_code) from None
        if not isinstance(data, dict):
            raise BackendError(entity, "unexpected response shape", response.status_code)
        if not response.ok or not data.get("success", False):
            message = data.get("error") or data.get("message") or f"HTTP {response.status_code}"
            raise BackendError(entity, str(message), response.status_code)
        return data

    def _send(self, entity: str, method: str, **kwargs):
        try:
            return self.session.request(method, self._url(entity), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(entity, f"request failed: {exc}") from exc

    def fetch(self, entity: str) -> list[dict]:
        response = self._send(entity, "GET")
        data = self._payload(entity, response).get("data") or []
        logger.debug("Fetched %d %s", len(data), entity)
        return list(data)

    def bulk_upsert(self, entity: str, records, lookup_field: str) -> UpsertResult:
        body = {"action": "bulk_upsert", "data": {entity: list(records), "lookupField": lookup_field}}
        response = self._send(entity, "POST", json=body)
        data = self._payload(entity, response)
        return UpsertResult(
            created=int(data.get("created") or 0),
            updated=int(data.get("updated") or 0),
            total=int(data.get("total") or 0),
        )


def fetch_existing_data(client: BackendClient) -> dict[str, list]:
    """Stored records for every entity, fetched one after another."""
    existing = {}
    for entity in ENTITIES:
        existing[entity] = client.fetch(entity)
    logger.info("Fetched stored data: %s", {k: len(v) for k, v in existing.items()})
    return existing
