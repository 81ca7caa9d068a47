from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from formlinks.core.config import settings


def build_connect_args(database_url: str) -> dict:
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgresql"):
        return {"options": "-c timezone=utc"}
    if backend == "sqlite":
        return {"check_same_thread": False}
    return {}


def configure_sqlite(engine: Engine) -> None:
    """
    Take over transaction control from pysqlite so SAVEPOINTs work.

    BEGIN IMMEDIATE serializes writers up front; concurrent units of work
    wait on the busy timeout instead of failing with a lock upgrade deadlock.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=build_connect_args(settings.DATABASE_URL),
)
configure_sqlite(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
