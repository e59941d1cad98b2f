"""ORM Models — SQLAlchemy declarative models backing the document store.

Invariants:
    - All models inherit from Base (db/base.py)
    - Entities live as JSON bodies in Document; there are no per-entity tables

Design Decisions:
    - Models imported here so Base.metadata is complete before create_all or autogenerate
"""

from campus.models.document import Document  # noqa: F401
