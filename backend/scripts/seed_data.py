"""Seed the database with a demo organization, users and published content."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from snippetbase.database import SessionLocal, engine, Base
import snippetbase.models  # noqa: F401

from snippetbase.models.collection import Collection, CollectionAcl
from snippetbase.models.user import Organization, User
from snippetbase.services.content_service import ContentEngine
from snippetbase.services.results import is_error


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(User).count() > 0:
            print("Database already seeded. Skipping.")
            return

        org = Organization(name="Demo Support")
        db.add(org)
        db.flush()

        users = {
            "admin": User(organization_id=org.organization_id, email="admin@demo.test",
                          given_name="Alex", is_organization_admin=True),
            "publisher": User(organization_id=org.organization_id, email="publisher@demo.test", given_name="Sam"),
            "editor": User(organization_id=org.organization_id, email="editor@demo.test", given_name="Jordan"),
            "viewer": User(organization_id=org.organization_id, email="viewer@demo.test", given_name="Riley"),
        }
        db.add_all(users.values())
        db.flush()

        collection = Collection(organization_id=org.organization_id, name="Customer replies",
                                description="Canned replies and escalation playbooks",
                                default_permissions=["viewer"])
        db.add(collection)
        db.flush()
        db.add_all([
            CollectionAcl(collection_id=collection.collection_id, user_id=users["publisher"].user_id,
                          permissions=["publisher"]),
            CollectionAcl(collection_id=collection.collection_id, user_id=users["editor"].user_id,
                          permissions=["editor"]),
        ])
        db.commit()

        # Content goes through the engine so every row gets its background jobs.
        content = ContentEngine(db)
        snippet = content.create_object("snippet", {
            "collection_id": collection.collection_id,
            "name": "Refund confirmation",
            "description": "Confirms a refund was issued",
            "keywords": ["refund", "billing"],
            "configuration": {"template": "Hi {{name}}, your refund of {{amount}} is on its way."},
        }, "published", users["publisher"])
        if is_error(snippet):
            raise RuntimeError(snippet.message)

        playbook = content.create_object("playbook", {
            "collection_id": collection.collection_id,
            "name": "Billing escalation",
            "icon": "book",
            "contents": [
                {"type": "heading-one", "children": [{"text": "Billing escalation"}]},
                {"type": "paragraph", "children": [{"text": "Confirm the refund with the customer:"}]},
                {"type": "snippet", "snippet": snippet.static_id, "children": [{"text": ""}]},
            ],
        }, "published", users["publisher"])
        if is_error(playbook):
            raise RuntimeError(playbook.message)

        print("Seed data created successfully.")
        print("  Users: admin@demo.test, publisher@demo.test, editor@demo.test, viewer@demo.test")
        print(f"  Snippet: {snippet.static_id}  Playbook: {playbook.static_id}")
        print("  Run the worker (snippetbase-worker) to index containment and search.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
