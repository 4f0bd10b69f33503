import io
import os
import tempfile
from decimal import Decimal

import pytest

# loggers are created at import time, keep their files out of the repo
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="stockpass-logs-"))

from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from extensions import db  # noqa: E402
from models import User, Role  # noqa: E402
from security import issue_token  # noqa: E402


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / "uploads")
        LOG_DIR = str(tmp_path / "logs")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user and return its id."""
    counter = {"n": 0}

    def _make_user(email=None, role=Role.USER.value, balance="0.00", referral_code=None, **fields):
        counter["n"] += 1
        with app.app_context():
            user = User(
                email=email or f"user{counter['n']}@example.com",
                display_name=fields.pop("display_name", f"User {counter['n']}"),
                role=role,
                withdrawable_balance=Decimal(balance),
                referral_code=referral_code,
                **fields,
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user_id):
        with app.app_context():
            token = issue_token(db.session.get(User, user_id))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def user_id(make_user):
    return make_user(email="alice@example.com")


@pytest.fixture
def admin_id(make_user):
    return make_user(email="admin@example.com", role=Role.ADMIN.value)


@pytest.fixture
def fetch(app):
    """Fresh read of a row outside any request."""
    def _fetch(model, pk):
        with app.app_context():
            obj = db.session.get(model, pk)
            if obj is not None:
                db.session.expunge(obj)
            return obj

    return _fetch


def proof_file(name="proof.png", content=b"\x89PNG fake image bytes"):
    return (io.BytesIO(content), name)
