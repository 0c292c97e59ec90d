import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from snippetbase.database import Base, get_db
from snippetbase.main import app
from snippetbase.models.collection import Collection, CollectionAcl
from snippetbase.models.user import Organization, User
from snippetbase.services.content_service import ContentEngine
from snippetbase.services.job_handlers import JobHandlers
from snippetbase.services.job_queue import JobQueue
from snippetbase.worker import JobProcessor

TEST_DB_URL = "sqlite:///./test_snippetbase.db"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class RecordingEmailSender:
    def __init__(self):
        self.sent = []

    def send(self, user_id, template_kind, template_data):
        self.sent.append((user_id, template_kind, template_data))


class RecordingSearchIndexer:
    def __init__(self):
        self.calls = []

    def reindex(self, kind, static_id):
        self.calls.append((kind, static_id))


class RecordingEmailDelivery:
    def __init__(self):
        self.delivered = []

    def deliver(self, user_id, template_kind, template_data):
        self.delivered.append((user_id, template_kind, template_data))
        return True


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seed(db):
    acme = Organization(name="Acme")
    globex = Organization(name="Globex")
    db.add_all([acme, globex])
    db.flush()

    users = {
        "admin": User(organization_id=acme.organization_id, email="admin@acme.test", given_name="Ada", is_organization_admin=True),
        "publisher": User(organization_id=acme.organization_id, email="pat@acme.test", given_name="Pat"),
        "reviewer": User(organization_id=acme.organization_id, email="rita@acme.test", given_name="Rita"),
        "editor": User(organization_id=acme.organization_id, email="eddie@acme.test", given_name="Eddie"),
        "quiet": User(
            organization_id=acme.organization_id, email="quinn@acme.test", given_name="Quinn", wants_suggestion_emails=False
        ),
        "viewer": User(organization_id=acme.organization_id, email="val@acme.test", given_name="Val"),
        "outsider": User(organization_id=globex.organization_id, email="otto@globex.test", given_name="Otto"),
    }
    db.add_all(users.values())
    db.flush()

    collection = Collection(organization_id=acme.organization_id, name="Support macros", default_permissions=["viewer"])
    db.add(collection)
    db.flush()
    grants = {"publisher": ["publisher"], "reviewer": ["publisher"], "editor": ["editor"], "quiet": ["publisher"]}
    for key, roles in grants.items():
        db.add(CollectionAcl(collection_id=collection.collection_id, user_id=users[key].user_id, permissions=roles))
    db.commit()

    for u in users.values():
        db.refresh(u)
    db.refresh(collection)
    return {"users": users, "collection": collection, "org": acme}


@pytest.fixture
def queue():
    return JobQueue(max_attempts=3, backoff_base_seconds=0, backoff_max_seconds=0, lock_timeout_seconds=60)


@pytest.fixture
def content(db, queue):
    return ContentEngine(db, queue=queue)


@pytest.fixture
def emails():
    return RecordingEmailSender()


@pytest.fixture
def indexer():
    return RecordingSearchIndexer()


@pytest.fixture
def delivery():
    return RecordingEmailDelivery()


@pytest.fixture
def processor(queue, emails, indexer, delivery):
    handlers = JobHandlers(
        queue,
        email_sender_factory=lambda db: emails,
        search_indexer_factory=lambda db: indexer,
        email_delivery_factory=lambda db: delivery,
    )
    return JobProcessor(TestingSession, queue, handlers.as_mapping(), worker_id="test-worker", batch_size=50)


def run_jobs(processor, db):
    """Drain every runnable job, then drop anything the test session cached."""
    totals = processor.drain()
    db.expire_all()
    return totals


def snippet_payload(collection, **overrides):
    payload = {
        "collection_id": collection.collection_id,
        "name": "Refund macro",
        "description": "Reply for refund requests",
        "keywords": ["refund"],
        "configuration": {"template": "Hi {{name}}, your refund is on its way."},
    }
    payload.update(overrides)
    return payload


def playbook_payload(collection, contents=None, **overrides):
    payload = {
        "collection_id": collection.collection_id,
        "name": "Escalation playbook",
        "description": "",
        "keywords": [],
        "icon": "book",
        "contents": contents or [],
    }
    payload.update(overrides)
    return payload


def get_token(client, email: str) -> str:
    resp = client.post("/api/auth/login", json={"email": email})
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


def auth_headers(client, email: str) -> dict:
    return {"Authorization": f"Bearer {get_token(client, email)}"}
