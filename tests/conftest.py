import re

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, get_db
from mailer import MailDeliveryError, get_mailer
from main import app
from schemas import Category as CategorySchema
from schemas import Plant as PlantSchema
from schemas import User as UserSchema
from security import create_token, hash_password
from storage import StoredImage, get_image_store

OTP_RE = re.compile(r"OTP is: (\d{6})")


class RecordingMailer:
    """Keeps outgoing mail in memory; ``fail`` makes every send raise."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, text, html):
        if self.fail:
            raise MailDeliveryError()
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return f"msg-{len(self.sent)}"

    def last_otp(self, to=None):
        for mail in reversed(self.sent):
            if to is None or mail["to"] == to:
                return OTP_RE.search(mail["text"]).group(1)
        return None


class MemoryImageStore:
    def __init__(self):
        self.saved = {}
        self.deleted = []
        self.fail_delete = False

    def save(self, content_type, data):
        key = f"img{len(self.saved) + 1}.png"
        self.saved[key] = (content_type, data)
        return StoredImage(url=f"http://testserver/uploads/{key}", key=key)

    def delete(self, key):
        if self.fail_delete:
            raise OSError("disk unavailable")
        self.deleted.append(key)


@pytest.fixture
def db():
    return mongomock.MongoClient()["ecobloom_test"]


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def store():
    return MemoryImageStore()


@pytest.fixture
def client(db, mailer, store):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_image_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user: dict) -> dict:
    token = create_token(str(user["_id"]), user.get("is_admin", False))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name="Asha", is_admin=False, password="secret123", email=None):
        counter["n"] += 1
        user = UserSchema(
            name=name,
            number=f"98765{counter['n']:05d}",
            email=email or f"{name.lower()}{counter['n']}@gmail.com",
            password_hash=hash_password(password),
            is_admin=is_admin,
            is_verified=True,
        )
        return create_document(db, "user", user)

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", is_admin=True)


@pytest.fixture
def admin_headers(admin):
    return auth(admin)


@pytest.fixture
def customer(make_user):
    return make_user(name="Ravi")


@pytest.fixture
def customer_headers(customer):
    return auth(customer)


@pytest.fixture
def make_category(db):
    def _make(*keywords):
        return create_document(db, "category", CategorySchema(keywords=list(keywords)))

    return _make


@pytest.fixture
def make_plant(db, make_category):
    def _make(name="Fern", price=120.0, categories=None, available=True):
        if categories is None:
            categories = [make_category(f"{name} Category")["_id"]]
        plant = PlantSchema(name=name, price=price, categories=categories, available=available)
        return create_document(db, "plant", plant)

    return _make
