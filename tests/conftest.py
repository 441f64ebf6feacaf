import os

os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite://")
os.environ.setdefault("LEDGER_LOG_JSON", "false")
os.environ.setdefault("LEDGER_LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_api import crud, models, schemas
from ledger_api.database import Base, get_db
from ledger_api.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# Direct-to-database helpers
@pytest.fixture
def make_user(db):
    def _make_user(name: str, email: str = None) -> models.User:
        email = email or f"{name.lower()}@example.com"
        user = schemas.UserCreate(name=name, email=email, password="secret123")
        return crud.create_user(db, user, hashed_password="not-a-real-hash")

    return _make_user


@pytest.fixture
def make_account(db):
    def _make_account(user: models.User, balance="100", name="Checking") -> models.BankAccount:
        account = schemas.BankAccountCreate(name=name, bank="Acme Bank", balance=Decimal(balance))
        return crud.create_bank_account(db, account, user_id=user.id)

    return _make_account


@pytest.fixture
def shared_group(db, make_user):
    """A shared group owned by ana with bob as a plain member."""
    ana = make_user("Ana")
    bob = make_user("Bob")
    group = crud.create_group(db, schemas.GroupCreate(name="House"), user_id=ana.id)
    crud.add_member(db, group, bob.id)
    return group, ana, bob


@pytest.fixture
def balance_of(db):
    """Stored balance of an account as currently committed."""

    def _balance_of(account: models.BankAccount) -> Decimal:
        db.expire_all()
        return Decimal(db.get(models.BankAccount, account.id).balance)

    return _balance_of


# API helpers
@pytest.fixture
def signup(client):
    def _signup(name: str, email: str = None, password: str = "secret123") -> dict:
        email = email or f"{name.lower()}@example.com"
        response = client.post("/users/", json={"name": name, "email": email, "password": password})
        assert response.status_code == 201, response.text
        token = client.post("/token", data={"username": email, "password": password}).json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _signup
