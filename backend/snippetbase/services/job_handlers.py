"""Handlers for each background job name.

A handler receives a session and the job payload. Handlers re-read current
state instead of trusting the payload, so they tolerate duplicates and
out-of-order delivery. Raising sends the job back through the retry path.
"""

import logging
from functools import partial
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from snippetbase.models.content_object import KIND_PLAYBOOK, Playbook, Snippet
from snippetbase.services import identity_service
from snippetbase.services.containment_indexer import ContainmentIndexer
from snippetbase.services.delivery import (
    EmailSender,
    HttpEmailDelivery,
    HttpSearchIndexer,
    QueuedEmailSender,
    SearchIndexer,
)
from snippetbase.services.job_queue import (
    EMAIL,
    PLAYBOOK_MUTATION,
    SEARCH_REINDEX,
    SNIPPET_MUTATION,
    JobQueue,
)
from snippetbase.services.notification_service import NotificationFanout
from snippetbase.utils.permissions import Authorizer, CollectionAclAuthorizer

logger = logging.getLogger(__name__)

Handler = Callable[[Session, Dict[str, Any]], None]


class JobHandlers:
    def __init__(
        self,
        queue: JobQueue,
        *,
        authorizer_factory: Callable[[Session], Authorizer] = CollectionAclAuthorizer,
        email_sender_factory: Optional[Callable[[Session], EmailSender]] = None,
        search_indexer_factory: Callable[[Session], SearchIndexer] = HttpSearchIndexer,
        email_delivery_factory: Callable[[Session], HttpEmailDelivery] = HttpEmailDelivery,
    ):
        self.queue = queue
        self.authorizer_factory = authorizer_factory
        self.email_sender_factory = email_sender_factory or (lambda db: QueuedEmailSender(db, queue))
        self.search_indexer_factory = search_indexer_factory
        self.email_delivery_factory = email_delivery_factory

    def as_mapping(self) -> Dict[str, Handler]:
        return {
            SNIPPET_MUTATION: partial(self.content_mutation, Snippet),
            PLAYBOOK_MUTATION: partial(self.content_mutation, Playbook),
            SEARCH_REINDEX: self.search_reindex,
            EMAIL: self.email,
        }

    def content_mutation(self, model, db: Session, payload: Dict[str, Any]) -> None:
        object_id = payload.get("object_id")
        action = payload.get("action")
        rev = identity_service.get_revision(db, model, object_id) if object_id is not None else None
        if rev is None:
            logger.warning("[jobs] %s revision %s not found, nothing to do", model.kind, object_id)
            return

        if rev.kind == KIND_PLAYBOOK:
            ContainmentIndexer(db).apply(rev.id, action)

        fanout = NotificationFanout(db, self.authorizer_factory(db), self.email_sender_factory(db))
        fanout.notify_subscribers(rev)

        if rev.is_published:
            self.queue.enqueue_reindex(db, rev.kind, rev.static_id)
            db.commit()

        # Emails go last: a retry after this point can send them twice.
        fanout.send_suggestion_emails(rev)

    def search_reindex(self, db: Session, payload: Dict[str, Any]) -> None:
        kind = payload.get("kind")
        static_id = payload.get("static_id")
        if identity_service.model_for_kind(kind) is None or not static_id:
            logger.warning("[jobs] malformed search_reindex payload: %s", payload)
            return
        indexer = self.search_indexer_factory(db)
        indexer.reindex(kind, static_id)
        if kind != KIND_PLAYBOOK:
            return
        # Playbooks that embed this one show its content in their own documents.
        for playbook_static_id in ContainmentIndexer(db).dependent_playbooks([static_id]):
            indexer.reindex(KIND_PLAYBOOK, playbook_static_id)

    def email(self, db: Session, payload: Dict[str, Any]) -> None:
        self.email_delivery_factory(db).deliver(
            payload.get("user_id"),
            payload.get("template_kind"),
            payload.get("template_data") or {},
        )
