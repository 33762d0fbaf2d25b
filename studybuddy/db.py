from sqlmodel import SQLModel, create_engine, Session

from studybuddy.config import DATABASE_URL
from studybuddy import models  # noqa: F401  register tables on SQLModel.metadata

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db() -> None:
    """Create all tables if they don't exist."""
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
