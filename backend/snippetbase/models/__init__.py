"""SQLAlchemy model package; importing it registers every table on the metadata."""

from snippetbase.models.user import Organization, User
from snippetbase.models.collection import Collection, CollectionAcl
from snippetbase.models.content_object import Snippet, Playbook
from snippetbase.models.containment import PlaybookContainsObject
from snippetbase.models.notification import Notification, UserNotification
from snippetbase.models.subscription import UserSubscription, UserSnippetRun, UserPlaybookView
from snippetbase.models.job import BackgroundJob

__all__ = [
    "Organization", "User",
    "Collection", "CollectionAcl",
    "Snippet", "Playbook",
    "PlaybookContainsObject",
    "Notification", "UserNotification",
    "UserSubscription", "UserSnippetRun", "UserPlaybookView",
    "BackgroundJob",
]
