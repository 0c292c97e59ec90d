"""Collection-scoped permission checks."""

from typing import Iterable, Optional, Protocol, Set

from sqlalchemy.orm import Session

from snippetbase.models.collection import Collection, CollectionAcl
from snippetbase.models.user import User

PERMISSION_SEE_COLLECTION = "see_collection"
PERMISSION_SUGGEST = "suggest"
PERMISSION_PUBLISH = "publish"
PERMISSION_REVIEW_SUGGESTIONS = "review_suggestions"
PERMISSION_MANAGE_COLLECTION = "manage_collection"

VIEWER = "viewer"
EDITOR = "editor"
PUBLISHER = "publisher"
ADMIN = "admin"

ROLE_PERMISSIONS = {
    VIEWER: {PERMISSION_SEE_COLLECTION},
    EDITOR: {PERMISSION_SEE_COLLECTION, PERMISSION_SUGGEST},
    PUBLISHER: {PERMISSION_SEE_COLLECTION, PERMISSION_SUGGEST, PERMISSION_PUBLISH, PERMISSION_REVIEW_SUGGESTIONS},
    ADMIN: {
        PERMISSION_SEE_COLLECTION,
        PERMISSION_SUGGEST,
        PERMISSION_PUBLISH,
        PERMISSION_REVIEW_SUGGESTIONS,
        PERMISSION_MANAGE_COLLECTION,
    },
}


class Authorizer(Protocol):
    def has_collection_permission(self, user: Optional[User], collection_id: int, permission: str) -> bool:
        ...


def expand_roles(roles: Optional[Iterable[str]]) -> Set[str]:
    permissions: Set[str] = set()
    for role in roles or ():
        key = (role or "").strip().lower()
        # ACLs may also list individual permissions directly.
        permissions |= ROLE_PERMISSIONS.get(key, {key})
    return permissions


def is_org_admin(user: User, organization_id: Optional[int]) -> bool:
    return bool(
        organization_id is not None
        and user.organization_id == organization_id
        and user.is_organization_admin
    )


class CollectionAclAuthorizer:
    """Org admins get everything; others get the collection defaults plus their ACL."""

    def __init__(self, db: Session):
        self.db = db

    def permissions_for(self, user: Optional[User], collection_id: int) -> Set[str]:
        if user is None or not user.is_active:
            return set()
        collection = self.db.query(Collection).filter(Collection.collection_id == collection_id).first()
        if not collection:
            return set()
        if is_org_admin(user, collection.organization_id):
            return set(ROLE_PERMISSIONS[ADMIN])

        granted: Set[str] = set()
        if collection.organization_id is not None and collection.organization_id == user.organization_id:
            granted |= expand_roles(collection.default_permissions)
        acl = (
            self.db.query(CollectionAcl)
            .filter(CollectionAcl.collection_id == collection_id, CollectionAcl.user_id == user.user_id)
            .first()
        )
        if acl:
            granted |= expand_roles(acl.permissions)
        return granted

    def has_collection_permission(self, user: Optional[User], collection_id: int, permission: str) -> bool:
        return permission in self.permissions_for(user, collection_id)
