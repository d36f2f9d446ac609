from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.settings import get_service_database_url, get_settings


class Base(DeclarativeBase):
    pass


engine = create_engine(get_settings().database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

# Elevated credential; only admin handlers and migrations use it.
service_engine = create_engine(get_service_database_url(), pool_pre_ping=True)
ServiceSessionLocal = sessionmaker(bind=service_engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_service_db() -> Generator[Session, None, None]:
    db = ServiceSessionLocal()
    try:
        yield db
    finally:
        db.close()
