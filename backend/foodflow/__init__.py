"""
FoodFlow Backend: Application Package
=====================================

What: The `foodflow` package holding the recipe-like and notification API.
Who:  Imported by uvicorn (`foodflow.main:app`), Alembic and pytest.

Architecture Note:
    The backend is split into layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Like toggle, notifications, recognition
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes never touch SQL. Services receive an AsyncSession per call and
    never commit it; the request-scoped session dependency owns the
    transaction boundary.
"""

__version__ = "1.0.0"
