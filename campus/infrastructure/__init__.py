"""Infrastructure Layer — store implementations and cross-cutting concerns.

Invariants:
    - Stores report conflicts as WriteConflictError and never retry themselves
    - Database errors are mapped to DatabaseError at the session boundary

Design Decisions:
    - Two DocumentStore implementations behind one Protocol: SQL for deployment,
      in-memory for tests and local runs
"""
