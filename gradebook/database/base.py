"""
SQLAlchemy Base Configuration

This module provides the SQLAlchemy declarative base shared by the
gradebook ORM models.
"""

from typing import Any, Dict

from sqlalchemy import MetaData, inspect
from sqlalchemy.orm import declarative_base

# Configure naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)

Base = declarative_base(metadata=metadata)


class ModelBase(Base):
    """Base class for all SQLAlchemy models."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary."""
        return {
            attr.key: getattr(self, attr.key)
            for attr in inspect(self).mapper.column_attrs
        }

    def update(self, data: Dict[str, Any]) -> None:
        """Copy matching column values from ``data`` onto the instance."""
        keys = {attr.key for attr in inspect(self).mapper.column_attrs}
        for key, value in data.items():
            if key in keys:
                setattr(self, key, value)
