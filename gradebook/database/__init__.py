"""
Database Module

This module provides the declarative base and engine management for the
gradebook engine.
"""

from gradebook.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
