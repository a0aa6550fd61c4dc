"""
Database package exposing the engine, session helpers, ORM models and release stores.
"""

from . import models  # noqa: F401
from .session import Base, SessionLocal, engine, get_db  # noqa: F401
