from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recordflow.db_models import Base


def is_in_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def build_engine(database_url: str) -> Engine:
    """Engine shared by the run store and the SQL readers/writers.

    SQLite connections may be used from executor worker threads. An in-memory
    database lives on one pooled connection so every session sees the same tables.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True)
    options: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    if is_in_memory_sqlite(database_url):
        options["poolclass"] = StaticPool
    return create_engine(database_url, future=True, **options)


def build_session_factory(database_url: str | Engine, *, create_schema: bool = True) -> sessionmaker[Session]:
    engine = build_engine(database_url) if isinstance(database_url, str) else database_url
    if create_schema:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
