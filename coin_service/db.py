from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from common.settings import settings

def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, isolation_level="READ COMMITTED")

engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

def get_session_factory():
    """FastAPI dependency; tests override it with an in-memory factory."""
    return SessionLocal
