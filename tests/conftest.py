from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ardine.db.base import Base
from ardine.db.dependencies import get_db_session
import ardine.models.entities  # noqa: F401
from ardine.main import create_app
from ardine.models.entities import (
    Client,
    Invoice,
    InvoiceItem,
    Project,
    ProjectMember,
    ProjectTask,
    TaskAssignee,
    Team,
    TeamMembership,
    TimeEntry,
    User,
)

TEST_TABLES = [
    User.__table__,
    Team.__table__,
    TeamMembership.__table__,
    Client.__table__,
    Project.__table__,
    ProjectMember.__table__,
    ProjectTask.__table__,
    TaskAssignee.__table__,
    Invoice.__table__,
    InvoiceItem.__table__,
    TimeEntry.__table__,
]


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

