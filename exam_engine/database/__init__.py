"""
Database Module

This module provides database configuration and ORM models for the exam engine.
"""

from exam_engine.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
