from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import stylegen.models  # noqa: F401
from stylegen.core.config import settings
from stylegen.db.base import Base
from stylegen.schemas.style import GenerationForm, StyleProfile


@pytest.fixture()
def db_session(tmp_path: Path):
    db_path = tmp_path / "test.db"
    # TestClient runs sync endpoints on a worker thread.
    engine = create_engine(
        f"sqlite+pysqlite:///{db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch: pytest.MonkeyPatch):
    # No test may reach real retailers, storage or model endpoints.
    monkeypatch.setattr(settings, "openai_api_key", "")
    monkeypatch.setattr(settings, "style_model_url", None)
    monkeypatch.setattr(settings, "oxylabs_username", "")
    monkeypatch.setattr(settings, "oxylabs_password", "")
    monkeypatch.setattr(settings, "image_store_backend", "none")
    monkeypatch.setattr(settings, "free_monthly_outfits", 3)


@pytest.fixture()
def complete_profile() -> StyleProfile:
    return StyleProfile(
        gender="female",
        age=29,
        height_cm=168,
        weight_kg=60,
        locale="en-US",
        preferred_units="metric",
    )


@pytest.fixture()
def wedding_form() -> GenerationForm:
    return GenerationForm(
        preparing_for="wedding",
        preferred_brand="zara",
        budget="300",
        description="elegant",
    )
