import os
import tempfile

# Point the app at a throwaway SQLite database before cashledger is imported
_DB_DIR = tempfile.mkdtemp(prefix="cashledger-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'ledger.db')}"
os.environ["ENV"] = "test"
os.environ["LANGUAGE"] = "en"
os.environ["LOG_FILE"] = ""

import pytest
from fastapi.testclient import TestClient

from cashledger.core.database import SessionLocal, engine
from cashledger.core.roles import Role
from cashledger.core.security import create_token
from cashledger.models import Base, User
from cashledger.services import money_box_service


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(db, email, name, role=Role.cashier):
    # Tests never log in, so the password hash is a placeholder
    user = User(email=email, name=name, hashed_password="x", role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def cashier(db):
    return make_user(db, "cashier@test.com", "Cashier One")


@pytest.fixture
def other_cashier(db):
    return make_user(db, "cashier2@test.com", "Cashier Two")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@test.com", "Admin", Role.admin)


@pytest.fixture
def money_boxes(db):
    money_box_service.ensure_default_money_boxes(db)
    return {
        "daily": money_box_service.get_daily_money_box(db),
        "main": money_box_service.get_main_money_box(db),
    }


@pytest.fixture
def client():
    from cashledger.main import app

    return TestClient(app)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token(str(user.id))}"}
