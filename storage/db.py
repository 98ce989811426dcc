# tasksync/storage/db.py
from pathlib import Path
from typing import Callable

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

# Ensure SQLModel metadata is populated
import models.sheet_row  # noqa: F401


def create_db_engine(path: Path | str | None = None):
    if path is None or str(path) == ":memory:":
        return create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_path.as_posix()}", echo=False)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


def session_factory(engine) -> Callable[[], Session]:
    def factory() -> Session:
        return Session(engine)

    return factory
