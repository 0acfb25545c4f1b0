"""
Storage layer exports.
"""

from app.fetching.storage.base import ResourceStore
from app.fetching.storage.sqlalchemy_storage import SQLAlchemyResourceStore

__all__ = ["ResourceStore", "SQLAlchemyResourceStore"]
