import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core.context import ScheduleContext
from app.core.security import create_access_token
from app.db.base import Base
from app.main import app
from app.models.directory import Batch, Subject, Teacher
from app.schemas.period_template import ALL_DAYS, STANDARD_DAY_LAYOUT, PeriodTemplateCreate
from app.services.schedule_locks import clear_schedule_locks
from app.services.template_catalog import PeriodTemplateCatalog

ORG = "org-1"
OTHER_ORG = "org-2"
EDITOR = "admin-1"


def seed_directory(session) -> None:
    session.add_all(
        [
            Batch(id="batch-a", organization_id=ORG, name="Grade 7 A"),
            Batch(id="batch-b", organization_id=ORG, name="Grade 7 B"),
            Batch(id="batch-x", organization_id=OTHER_ORG, name="Elsewhere"),
            Teacher(id="teacher-1", organization_id=ORG, full_name="Asha Rao"),
            Teacher(id="teacher-2", organization_id=ORG, full_name="Vikram Iyer"),
            Teacher(id="teacher-x", organization_id=OTHER_ORG, full_name="Other Org"),
            Subject(id="subject-math", organization_id=ORG, name="Mathematics", code="MATH"),
            Subject(id="subject-sci", organization_id=ORG, name="Science", code="SCI"),
        ]
    )
    session.commit()


def make_session_factory(url: str, **engine_kwargs):
    engine = create_engine(url, connect_args={"check_same_thread": False}, **engine_kwargs)
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def auth_headers(*, org: str = ORG, sub: str = EDITOR, permissions=("SCHEDULE_EDIT",)) -> dict:
    token = create_access_token(sub, organization_id=org, permissions=list(permissions))
    return {"Authorization": f"Bearer {token}"}


def standard_template_payload(**overrides) -> PeriodTemplateCreate:
    data = {
        "name": "Standard day",
        "is_default": True,
        "active_days": list(ALL_DAYS),
        "slots": STANDARD_DAY_LAYOUT,
    }
    data.update(overrides)
    return PeriodTemplateCreate(**data)


@pytest.fixture(autouse=True)
def reset_locks():
    clear_schedule_locks()
    yield
    clear_schedule_locks()


@pytest.fixture()
def session_factory():
    engine, factory = make_session_factory("sqlite+pysqlite://", poolclass=StaticPool)
    session = factory()
    seed_directory(session)
    session.close()
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """On-disk database so sessions in separate threads get their own connections."""
    engine, factory = make_session_factory(f"sqlite+pysqlite:///{tmp_path / 'schedule.db'}")
    session = factory()
    seed_directory(session)
    session.close()
    yield factory
    engine.dispose()


@pytest.fixture()
def ctx() -> ScheduleContext:
    return ScheduleContext(organization_id=ORG, actor_id=EDITOR)


@pytest.fixture()
def standard_template(db, ctx):
    return PeriodTemplateCatalog(db).create_template(ctx, standard_template_payload())


@pytest.fixture()
def client(session_factory):
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


@pytest.fixture()
def make_headers():
    return auth_headers


@pytest.fixture()
def template_payload():
    return standard_template_payload
