from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from voicepanel.core.config import settings


def _connect_args(database_url: str) -> Dict[str, Any]:
    """Remote databases get SSL with TCP keepalives; local ones connect plain."""
    if "localhost" in database_url or "127.0.0.1" in database_url:
        return {}
    return {
        "sslmode": "require",
        "keepalives": 1,
        "keepalives_idle": 30,
        "keepalives_interval": 10,
        "keepalives_count": 5,
    }


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=1800,  # runs can outlive an idle SSL connection
    pool_size=10,
    max_overflow=20,
    connect_args=_connect_args(settings.DATABASE_URL),
)

# Request-scoped sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Background runs commit once per response and keep using the run and variant
# rows they loaded at the start, so those rows must not expire on commit.
RunSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
