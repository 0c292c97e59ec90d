"""Outbound collaborators: email delivery and the full-text search index.

Both talk HTTP with ``httpx``. When the target URL is not configured the call
is logged and skipped, which is what local development and tests rely on.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from snippetbase.config import settings
from snippetbase.models.user import User
from snippetbase.services import identity_service
from snippetbase.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send(self, user_id: int, template_kind: str, template_data: Dict[str, Any]) -> None:
        ...


class SearchIndexer(Protocol):
    def reindex(self, kind: str, static_id: str) -> None:
        ...


class QueuedEmailSender:
    """Queues an ``email`` job in the caller's transaction; the worker delivers it."""

    def __init__(self, db: Session, queue: JobQueue):
        self.db = db
        self.queue = queue

    def send(self, user_id: int, template_kind: str, template_data: Dict[str, Any]) -> None:
        self.queue.enqueue_email(self.db, user_id, template_kind, template_data)


def _headers(api_key: str) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


class HttpEmailDelivery:
    def __init__(self, db: Session, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.db = db
        self.api_url = settings.EMAIL_API_URL if api_url is None else api_url
        self.api_key = settings.EMAIL_API_KEY if api_key is None else api_key

    def deliver(self, user_id: int, template_kind: str, template_data: Dict[str, Any]) -> bool:
        user = self.db.query(User).filter(User.user_id == user_id).first()
        if not user or not user.is_active:
            logger.info("[email] user %s missing or inactive, dropping %s", user_id, template_kind)
            return False
        if not self.api_url:
            logger.info("[email] EMAIL_API_URL not set, skipping %s to user %s", template_kind, user_id)
            return False
        response = httpx.post(
            self.api_url,
            headers=_headers(self.api_key),
            json={"to": user.email, "template": template_kind, "data": template_data},
            timeout=float(settings.HTTP_TIMEOUT_SECONDS),
        )
        response.raise_for_status()
        logger.info("[email] sent %s to user %s", template_kind, user_id)
        return True


class HttpSearchIndexer:
    """Pushes the latest published revision of an object to the search service, or removes it."""

    def __init__(self, db: Session, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.db = db
        self.api_url = (settings.SEARCH_API_URL if api_url is None else api_url).rstrip("/")
        self.api_key = settings.SEARCH_API_KEY if api_key is None else api_key

    def _document_url(self, static_id: str) -> str:
        return f"{self.api_url}/indexes/{settings.SEARCH_INDEX_NAME}/documents/{static_id}"

    def build_document(self, row) -> Dict[str, Any]:
        return {
            "static_id": row.static_id,
            "kind": row.kind,
            "revision_id": row.id,
            "collection_id": row.collection_id,
            "name": row.name,
            "description": row.description,
            "keywords": list(row.keywords or []),
        }

    def reindex(self, kind: str, static_id: str) -> None:
        if not self.api_url:
            logger.info("[search] SEARCH_API_URL not set, skipping %s %s", kind, static_id)
            return
        model = identity_service.model_for_kind(kind)
        if model is None:
            raise ValueError(f"Unknown content kind: {kind}")
        latest = identity_service.resolve_latest_published(self.db, static_id, model)
        if latest is None or latest.is_archived:
            response = httpx.delete(
                self._document_url(static_id),
                headers=_headers(self.api_key),
                timeout=float(settings.HTTP_TIMEOUT_SECONDS),
            )
            if response.status_code != 404:
                response.raise_for_status()
            logger.info("[search] removed %s", static_id)
            return
        response = httpx.put(
            self._document_url(static_id),
            headers=_headers(self.api_key),
            json=self.build_document(latest),
            timeout=float(settings.HTTP_TIMEOUT_SECONDS),
        )
        response.raise_for_status()
        logger.info("[search] indexed %s revision %s", static_id, latest.id)
