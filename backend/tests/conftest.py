import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core.security import get_password_hash
from app.db.base import Base
from app.main import app
from app.models.user import User, UserRole
from app.services.rate_limit import clear_rate_limiter


def _memory_engine():
    return create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def session_factory():
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    clear_rate_limiter()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_rate_limiter()


@pytest.fixture()
def create_user(session_factory):
    """Insert an account directly; sign-up only ever yields students."""

    def _create(email, role="STUDENT", name="Test User", password="password123"):
        with session_factory() as db:
            user = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(password),
                role=UserRole(role),
                is_active=True,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            db.expunge(user)
            return user

    return _create


@pytest.fixture()
def account(client, create_user):
    """Seed an account with the given role and sign it in; returns (headers, user json)."""

    def _account(email, role, name="Test User"):
        create_user(email, role=role, name=name)
        response = client.post("/api/auth/login", json={"email": email, "password": "password123"})
        assert response.status_code == 200
        data = response.json()
        return {"Authorization": f"Bearer {data['access_token']}"}, data["user"]

    return _account
