"""
Desktop Database Transfer Engine

A migration toolkit for copying tables, stored queries and procedures from a
legacy desktop database (Microsoft Access) into a relational server (MySQL).

Supports:
- Catalog listing of source tables, queries and procedures
- Operator-selected subsets, each tracked as an independent transfer item
- Bounded concurrent execution with batch-level progress
- Cooperative cancellation, targeted retry and resume from a saved snapshot
- Failure classification without aborting sibling transfers
"""

__version__ = "0.1.0"
