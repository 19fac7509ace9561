"""
SQLAlchemy database connection and session management.

This module provides:
- Engine and session factory construction from Settings
- A transaction scope for services and workers

Usage:
     from database import create_session_factory, session_scope

     factory = create_session_factory(settings)
     with session_scope(factory) as db:
          owners = db.query(User).all()
"""
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings


def create_db_engine(settings: Settings) -> Engine:
     """
     Create the SQLAlchemy engine for the configured DATABASE_URL.

     SQLite (local development and tests) gets a single shared connection;
     server databases get a recycled connection pool.
     """
     if settings.database_url.startswith("sqlite"):
          return create_engine(
               settings.database_url,
               connect_args={"check_same_thread": False},
               poolclass=StaticPool,
               echo=settings.sql_echo,
          )

     return create_engine(
          settings.database_url,
          pool_size=5,
          max_overflow=10,
          pool_timeout=30,
          pool_recycle=1800,  # Recycle connections after 30 minutes
          pool_pre_ping=True,
          echo=settings.sql_echo,
     )


def create_session_factory(settings_or_engine) -> sessionmaker:
     """Session factory bound to an engine (or to a new engine built from Settings)."""
     engine = settings_or_engine
     if isinstance(settings_or_engine, Settings):
          engine = create_db_engine(settings_or_engine)
     return sessionmaker(
          bind=engine,
          autocommit=False,
          autoflush=False,
          expire_on_commit=False,
     )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
     """
     One short transaction: commit on success, roll back on error.

     Usage:
          with session_scope(factory) as db:
               db.add(invoice)
     """
     session = factory()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db(engine: Engine) -> None:
     """
     Initialize database tables.

     Creates all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     from models import Base
     Base.metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with engine.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except Exception:
          return False
