import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import normalize_email, optional_principal, verify_token
from database import create_document, ensure_indexes, get_db
from main import app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["lessons_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """Make every following request authenticated as ``email``."""
    def _login(email):
        principal = normalize_email(email)
        app.dependency_overrides[verify_token] = lambda: principal
        app.dependency_overrides[optional_principal] = lambda: principal
    return _login


@pytest.fixture
def make_user(db):
    def _make_user(email, role="user", lessonCount=0, **extra):
        doc = {
            "email": normalize_email(email),
            "name": email.split("@")[0],
            "role": role,
            "isPremium": False,
            "lessonCount": lessonCount,
            **extra,
        }
        create_document(db, "user", doc)
        return doc
    return _make_user


@pytest.fixture
def make_lesson(db):
    def _make_lesson(authorEmail="author@x.com", **extra):
        doc = {
            "title": "Patience",
            "description": "Waiting is a skill",
            "category": "growth",
            "emotionalTone": "calm",
            "privacy": "public",
            "accessLevel": "free",
            "authorEmail": authorEmail,
            "authorLessonCount": 1,
            "likes": [],
            "likesCount": 0,
            "favoritesCount": 0,
            "isFeatured": False,
            "isReviewed": False,
            **extra,
        }
        return create_document(db, "lesson", doc)
    return _make_lesson


@pytest.fixture
def failing_insert(monkeypatch):
    """Make ``insert_one`` on one collection raise the given error."""
    def _failing_insert(collection_name, error):
        original = mongomock.collection.Collection.insert_one

        def insert_one(self, document, *args, **kwargs):
            if self.name == collection_name:
                raise error
            return original(self, document, *args, **kwargs)
        monkeypatch.setattr(mongomock.collection.Collection, "insert_one", insert_one)
    return _failing_insert
