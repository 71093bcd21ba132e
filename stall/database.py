from collections.abc import Generator

from sqlmodel import Session, SQLModel, create_engine

from . import models  # noqa: F401  registers the stall tables on SQLModel.metadata
from .config import get_settings


def build_engine(url: str):
    kwargs = {}
    if url.startswith("sqlite"):
        # the API and the ledger retries share connections across threads
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, echo=False, **kwargs)


engine = build_engine(get_settings().database_url)


def init_db() -> None:
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
