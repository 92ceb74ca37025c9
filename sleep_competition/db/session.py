from __future__ import annotations

import os

from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine


def database_url() -> str:
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    user = os.getenv("POSTGRES_USER", "sleep")
    password = os.getenv("POSTGRES_PASSWORD", "sleep")
    host = os.getenv("POSTGRES_HOST", "postgres")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "sleep_competition")
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"


_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(database_url())
    return _engine


def create_session() -> Session:
    return Session(get_engine())
