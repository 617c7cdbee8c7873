from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from resto.core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str = None):
    """Create the SQLAlchemy engine for the given URL (defaults to settings)."""
    url = url or settings.database_url
    options = {
        "pool_pre_ping": True,
        "echo": settings.DB_ECHO,
    }
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    engine = create_engine(url, **options)
    logger.debug(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


sync_engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        # Anything left uncommitted is rolled back on close
        db.close()
