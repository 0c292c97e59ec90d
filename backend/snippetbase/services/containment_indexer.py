"""Maintains ``playbook_contains_object``, the derived "what does this playbook embed" graph.

The graph is only ever rebuilt from the current latest published playbook, so
mutation jobs may run in any order and any number of times.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from snippetbase.models.containment import (
    OBJECT_KINDS,
    OBJECT_PLAYBOOK_EMBED,
    PlaybookContainsObject,
)
from snippetbase.models.content_object import BRANCH_PUBLISHED, Playbook
from snippetbase.services import identity_service
from snippetbase.services.content_tree import ContentTreeError, extract_objects

logger = logging.getLogger(__name__)


class ContainmentIndexer:
    def __init__(self, db: Session):
        self.db = db

    def extract(self, playbook) -> List[Dict[str, str]]:
        return [{"static_id": static_id, "kind": kind} for static_id, kind in extract_objects(playbook.contents)]

    def apply(self, playbook_id: int, action: str) -> Optional[List[Dict[str, str]]]:
        """Refresh the graph for the playbook that revision ``playbook_id`` belongs to.

        Returns the stored edges, or None when nothing was touched (unknown
        revision, or a draft/suggestion revision).
        """
        rev = identity_service.get_revision(self.db, Playbook, playbook_id)
        if rev is None:
            logger.warning("[containment] playbook revision %s not found", playbook_id)
            return None
        if rev.branch_type != BRANCH_PUBLISHED:
            return None

        # Jobs can run out of order; always index whatever is latest now.
        latest = identity_service.resolve_latest_published(self.db, rev.static_id, Playbook)
        if latest is None:
            logger.warning("[containment] %s has no latest published revision", rev.static_id)
            return None

        # The action only says what happened then; the latest row decides what holds now.
        objects: List[Dict[str, str]] = []
        if not latest.is_archived:
            try:
                objects = self.extract(latest)
            except ContentTreeError as e:
                logger.error(
                    "[containment] cannot read contents of %s (revision %s), skipping: %s",
                    latest.static_id, latest.id, e,
                )
                return None
        self._replace(latest.static_id, objects)
        self.db.commit()
        logger.info(
            "[containment] %s now contains %s object(s) after %s of revision %s",
            latest.static_id, len(objects), action, playbook_id,
        )
        return objects

    def _replace(self, playbook_static_id: str, objects: Sequence[Dict[str, str]]) -> None:
        self.db.query(PlaybookContainsObject).filter(
            PlaybookContainsObject.playbook_static_id == playbook_static_id
        ).delete(synchronize_session=False)
        for position, obj in enumerate(objects):
            self.db.add(
                PlaybookContainsObject(
                    playbook_static_id=playbook_static_id,
                    object_static_id=obj["static_id"],
                    object_kind=obj["kind"],
                    position=position,
                )
            )
        self.db.flush()

    def get_containment(self, static_id: str) -> List[Dict[str, str]]:
        rows = (
            self.db.query(PlaybookContainsObject)
            .filter(PlaybookContainsObject.playbook_static_id == static_id)
            .order_by(PlaybookContainsObject.position.asc())
            .all()
        )
        return [{"static_id": r.object_static_id, "kind": r.object_kind} for r in rows]

    def get_containing_playbooks(self, static_id: str, kinds: Optional[Iterable[str]] = None) -> List[str]:
        """Static ids of published playbooks that reference ``static_id``."""
        q = self.db.query(PlaybookContainsObject.playbook_static_id).filter(
            PlaybookContainsObject.object_static_id == static_id
        )
        q = q.filter(PlaybookContainsObject.object_kind.in_(list(kinds or OBJECT_KINDS)))
        return sorted({row[0] for row in q.all()})

    def dependent_playbooks(self, static_ids: Iterable[str]) -> List[str]:
        """Every playbook that embeds any of ``static_ids``, directly or through other embeds."""
        seen: Set[str] = set(static_ids)
        found: Set[str] = set()
        frontier = list(seen)
        while frontier:
            parents = (
                self.db.query(PlaybookContainsObject.playbook_static_id)
                .filter(
                    PlaybookContainsObject.object_static_id.in_(frontier),
                    PlaybookContainsObject.object_kind == OBJECT_PLAYBOOK_EMBED,
                )
                .distinct()
                .all()
            )
            frontier = [p[0] for p in parents if p[0] not in seen]
            seen.update(frontier)
            found.update(frontier)
        return sorted(found)

    def rebuild_all(self) -> Dict[str, int]:
        """Drop and rebuild the graph from every latest published playbook."""
        stats = {"indexed": 0, "skipped": 0, "edges": 0}
        self.db.query(PlaybookContainsObject).delete(synchronize_session=False)
        playbooks = (
            self.db.query(Playbook)
            .filter(Playbook.branch_type == BRANCH_PUBLISHED, Playbook.is_latest == True)
            .order_by(Playbook.id.asc())
            .all()
        )
        for playbook in playbooks:
            if playbook.is_archived:
                continue
            try:
                objects = self.extract(playbook)
            except ContentTreeError as e:
                logger.error("[containment] skipping %s (revision %s): %s", playbook.static_id, playbook.id, e)
                stats["skipped"] += 1
                continue
            self._replace(playbook.static_id, objects)
            stats["indexed"] += 1
            stats["edges"] += len(objects)
        self.db.commit()
        logger.info("[containment] rebuilt graph: %s", stats)
        return stats
