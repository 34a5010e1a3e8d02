"""Database package."""
from database.session import SQLALCHEMY_DATABASE_URL, create_session_factory

__all__ = ["SQLALCHEMY_DATABASE_URL", "create_session_factory"]
