import os
import logging
from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# Database URL with fallback to sqlite for development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./planscope.db")

# Convert postgres:// to postgresql:// for SQLAlchemy compatibility
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def get_database_config(database_url: str = DATABASE_URL):
    """Get database configuration with SSL and connection pooling settings"""
    is_production = os.getenv("ENV") == "production"
    is_postgres = database_url.startswith(("postgres://", "postgresql://"))

    base_config = {
        "echo": False,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }

    if is_postgres and is_production:
        base_config.update({
            "connect_args": {
                "sslmode": "require",
                "application_name": "planscope_backend"
            }
        })
        logger.info("Database: Production PostgreSQL with SSL configured")
    elif is_postgres:
        base_config.update({
            "connect_args": {
                "application_name": "planscope_dev"
            }
        })
        logger.info("Database: Development PostgreSQL configured")
    else:
        # SQLite: the default pool does not accept sizing arguments
        base_config = {
            "echo": False,
            "connect_args": {"check_same_thread": False}
        }
        logger.info("Database: SQLite configured")

    return base_config


sync_engine = create_engine(DATABASE_URL, **get_database_config())

# Sync session for the API and Celery workers
SyncSessionLocal = sessionmaker(sync_engine, class_=Session, expire_on_commit=False)


def create_db_and_tables():
    """Create database tables"""
    # Register table models on the metadata
    import models.db_models  # noqa: F401
    SQLModel.metadata.create_all(sync_engine)


def get_sync_session():
    """Yield a sync database session (FastAPI dependency)"""
    with SyncSessionLocal() as session:
        yield session
