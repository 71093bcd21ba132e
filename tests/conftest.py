import os

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.pop("LINE_CHANNEL_ACCESS_TOKEN", None)
os.environ.pop("ACCESS_KEY", None)

from stall.database import build_engine, get_session  # noqa: E402
from stall.main import app  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    # a file database so a second connection can race the first one
    engine = build_engine(f"sqlite:///{tmp_path / 'stall.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()