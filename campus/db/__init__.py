"""Database Schema — SQLAlchemy Base and schema bootstrap.

Invariants:
    - All ORM models register on db.base.Base
    - Production schema is owned by Alembic; create_schema is for tests and local runs

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for SQLite: both fully async
"""
