from sqlmodel import SQLModel, Session, create_engine
import structlog

from crewkit.config import settings

logger = structlog.get_logger(__name__)

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True)


def create_db_and_tables() -> None:
    # models must be imported so their tables are registered on the metadata
    import crewkit.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except Exception as e:
        # drop any half-built unit of work
        session.rollback()
        logger.debug("session_rollback", error_type=type(e).__name__)
        raise
    finally:
        session.close()
