from typing import Iterator

from sqlmodel import Session, SQLModel, create_engine

from ..config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, echo=settings.database_echo, connect_args=connect_args)


def create_db_and_tables():
    # Table classes register themselves on import
    from .. import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    with Session(engine) as ses:
        yield ses
