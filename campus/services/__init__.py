"""Services Layer — store transactions around the pure domain core.

Invariants:
    - Every write goes through DocumentStore.transaction: snapshot, pure decision, commit
    - Write conflicts are retried only through RetryPolicy, never ad hoc

Design Decisions:
    - One service per aggregate pair: enrollment, catalog, feed, messaging
"""
