"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from retrieval_gateway.settings import settings

# DATABASE_URL is read from the environment or .env by Settings
database_url = settings.DATABASE_URL

# Convert postgres:// to postgresql+psycopg:// for SQLAlchemy
if database_url.startswith("postgres://"):
    database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)


def make_engine(url: str):
    """Create a thread-safe engine for the given database URL."""
    if url.startswith("sqlite"):
        # Requests are served from a thread pool
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


# Create engine
engine = make_engine(database_url)

# Create session factory
SessionLocal = sessionmaker(
    engine,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()
