"""Create buildings table and duplicate lookup functions

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates the `buildings` catalog table and the two stored functions the
       duplicate detection service calls:
         check_building_duplicates(building_name, building_city, building_lat, building_lng)
         find_nearby_buildings(lat, lng, radius_meters)
How:   pg_trgm supplies trigram similarity for fuzzy names; distances use a
       SQL haversine helper (Earth radius 6,371,000 m), so PostGIS is not needed.

Matching rules of check_building_duplicates (approved/pending rows only):
    exact_location  within 50 m            high if < 20 m, else medium
    exact_name      same name, same city   high
    similar_name    trigram sim >= 0.5,    medium if >= 0.7, else low
                    same city
    One row per building: its strongest match wins.

Rollback: downgrade() drops the functions, then the table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


HAVERSINE_FUNCTION = """
CREATE OR REPLACE FUNCTION haversine_meters(
    lat1 double precision, lng1 double precision,
    lat2 double precision, lng2 double precision
) RETURNS double precision
LANGUAGE sql IMMUTABLE STRICT AS $$
    SELECT 2 * 6371000 * asin(sqrt(least(1.0,
        power(sin(radians(lat2 - lat1) / 2), 2)
        + cos(radians(lat1)) * cos(radians(lat2)) * power(sin(radians(lng2 - lng1) / 2), 2)
    )))
$$;
"""

CHECK_DUPLICATES_FUNCTION = """
CREATE OR REPLACE FUNCTION check_building_duplicates(
    building_name text,
    building_city text,
    building_lat double precision,
    building_lng double precision
) RETURNS TABLE (
    duplicate_id uuid,
    duplicate_name text,
    duplicate_address text,
    duplicate_latitude double precision,
    duplicate_longitude double precision,
    distance_meters double precision,
    similarity_score double precision,
    match_type text,
    confidence text
)
LANGUAGE sql STABLE AS $$
    WITH active AS (
        SELECT
            b.id, b.name, b.city, b.address, b.latitude, b.longitude,
            haversine_meters(building_lat, building_lng, b.latitude, b.longitude) AS dist,
            similarity(lower(b.name), lower(building_name))::double precision AS sim
        FROM buildings b
        WHERE b.moderation_status IN ('approved', 'pending')
    ),
    matches AS (
        SELECT a.id, a.name, a.address, a.latitude, a.longitude,
               a.dist AS dist, NULL::double precision AS sim,
               'exact_location' AS kind,
               CASE WHEN a.dist < 20 THEN 'high' ELSE 'medium' END AS conf,
               CASE WHEN a.dist < 20 THEN 3 ELSE 2 END AS strength
        FROM active a
        WHERE a.dist <= 50
        UNION ALL
        SELECT a.id, a.name, a.address, a.latitude, a.longitude,
               NULL, 1.0, 'exact_name', 'high', 3
        FROM active a
        WHERE lower(a.name) = lower(building_name)
          AND lower(a.city) = lower(building_city)
        UNION ALL
        SELECT a.id, a.name, a.address, a.latitude, a.longitude,
               NULL, a.sim, 'similar_name',
               CASE WHEN a.sim >= 0.7 THEN 'medium' ELSE 'low' END,
               CASE WHEN a.sim >= 0.7 THEN 2 ELSE 1 END
        FROM active a
        WHERE lower(a.city) = lower(building_city)
          AND lower(a.name) <> lower(building_name)
          AND a.sim >= 0.5
    ),
    strongest AS (
        SELECT DISTINCT ON (m.id) m.*
        FROM matches m
        ORDER BY m.id, m.strength DESC, m.dist ASC NULLS LAST
    )
    SELECT s.id, s.name::text, s.address, s.latitude, s.longitude,
           s.dist, s.sim, s.kind, s.conf
    FROM strongest s
    ORDER BY s.strength DESC, s.dist ASC NULLS LAST, s.sim DESC NULLS LAST
$$;
"""

FIND_NEARBY_FUNCTION = """
CREATE OR REPLACE FUNCTION find_nearby_buildings(
    lat double precision,
    lng double precision,
    radius_meters double precision DEFAULT 50
) RETURNS TABLE (
    id uuid,
    name text,
    city text,
    address text,
    latitude double precision,
    longitude double precision,
    distance_meters double precision
)
LANGUAGE sql STABLE AS $$
    SELECT n.id, n.name, n.city, n.address, n.latitude, n.longitude, n.dist
    FROM (
        SELECT b.id, b.name::text AS name, b.city::text AS city, b.address,
               b.latitude, b.longitude,
               haversine_meters(lat, lng, b.latitude, b.longitude) AS dist
        FROM buildings b
        WHERE b.moderation_status IN ('approved', 'pending')
    ) n
    WHERE n.dist <= radius_meters
    ORDER BY n.dist
$$;
"""


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    op.create_table(
        "buildings",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False, comment="Degrees, WGS84"),
        sa.Column("longitude", sa.Float(), nullable=False, comment="Degrees, WGS84"),
        sa.Column(
            "moderation_status",
            sa.String(50),
            nullable=False,
            server_default=sa.text("'pending'"),
            comment="pending, approved or rejected; rejected rows never match as duplicates",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("idx_buildings_city", "buildings", ["city"])
    op.create_index("idx_buildings_moderation_status", "buildings", ["moderation_status"])
    # Serves both the ILIKE quick search and trigram similarity
    op.execute(
        "CREATE INDEX idx_buildings_name_trgm ON buildings USING gin (lower(name) gin_trgm_ops)"
    )

    op.execute(HAVERSINE_FUNCTION)
    op.execute(CHECK_DUPLICATES_FUNCTION)
    op.execute(FIND_NEARBY_FUNCTION)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS find_nearby_buildings(double precision, double precision, double precision)")
    op.execute(
        "DROP FUNCTION IF EXISTS check_building_duplicates(text, text, double precision, double precision)"
    )
    op.execute(
        "DROP FUNCTION IF EXISTS haversine_meters(double precision, double precision, double precision, double precision)"
    )
    op.execute("DROP INDEX IF EXISTS idx_buildings_name_trgm")
    op.drop_index("idx_buildings_moderation_status", table_name="buildings")
    op.drop_index("idx_buildings_city", table_name="buildings")
    op.drop_table("buildings")
