"""
Database package initialization.

This module serves as the entry point for the database package, providing
a clean namespace for database-related functionality including models,
connections, and utilities.

The package follows a modular structure:
- base: Declarative base and timestamp mixin
- connection: Database connection management with async support
- models: SQLAlchemy ORM models for order tables
"""

__all__ = []
