"""
ArchiRoutes Backend: Application Package Initializer
====================================================

What: Marks the `app` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend hosts the two services of ArchiRoutes that carry real logic:
    building duplicate detection and route building/optimization.

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Matching, confidence, routing
    ├─────────────────────────────────────┤
    │    Store & Provider Adapters        │  ← SQL functions, ORS / Mapbox
    ├─────────────────────────────────────┤
    │     Database / External APIs        │  ← Async SQLAlchemy, httpx
    └─────────────────────────────────────┘

    Services receive their collaborators (a GeodataStore, a RoutingBackend)
    as constructor arguments, so each layer is testable with mocks.
"""

__version__ = "1.0.0"
