"""
ArchiRoutes Backend: Building SQLAlchemy Model
===============================================

What:  ORM model for the subset of the `buildings` catalog table that the
       duplicate detection service reads.
How:   Inherits from the shared DeclarativeBase; Alembic reads it for migrations.
Who:   SqlGeodataStore (quick name search) and the Alembic environment.

Only the columns used for matching are mapped here. The stored functions
`check_building_duplicates` and `find_nearby_buildings` (see migration 001)
query the same table server-side.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Float, Index, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

# Records in these states take part in duplicate detection; rejected ones do not
ACTIVE_MODERATION_STATUSES = ("approved", "pending")


class Building(Base):
    """
    A cataloged building.

    Query Patterns:
        - Quick search: WHERE name ILIKE '%q%' AND city = :city
          AND moderation_status IN ('approved', 'pending') LIMIT :n
          → idx_buildings_city narrows by city
        - Radius search / duplicate check: stored functions over latitude/longitude
    """

    __tablename__ = "buildings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    # Degrees, WGS84
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    # Values: 'pending' → 'approved' | 'rejected'
    moderation_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_buildings_city", "city"),
        Index("idx_buildings_moderation_status", "moderation_status"),
    )

    def __repr__(self) -> str:
        return f"<Building(id={self.id}, name='{self.name}', city='{self.city}')>"
