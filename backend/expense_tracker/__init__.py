"""
Expense Tracker Backend — Application Package
==============================================

Layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │  Services (auth gate, controllers)  │  ← Orchestration, ownership
    ├─────────────────────────────────────┤
    │   Stores (users, expense ledger)    │  ← Persistence, scoping
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
