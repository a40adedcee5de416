"""Database package"""

from talktofolder.database.base import Base
from talktofolder.database.session import engine, SessionLocal, get_db

__all__ = ["Base", "engine", "SessionLocal", "get_db"]
