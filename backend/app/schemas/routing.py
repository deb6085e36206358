"""
ArchiRoutes Backend: Routing Schemas
=====================================

What:  Pydantic models for waypoints, route options and computed routes.
Who:   RoutingService, every RoutingBackend variant, and the /api/routes endpoints.

Geometry follows GeoJSON LineString semantics: coordinates are
[longitude, latitude] pairs, first = first waypoint, last = last waypoint.
Every instruction's way_points is an index pair into those coordinates.
"""

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field


TransportMode = Literal["walking", "cycling", "driving", "public_transport"]


class RoutePoint(BaseModel):
    """A waypoint. The title is a label only and never used in computation."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    title: Optional[str] = None


class RouteOptions(BaseModel):
    """
    How the route should be travelled.

    avoid_tolls / avoid_ferries apply to driving only.
    prefer_green asks the provider to favour parks and green areas where it can.
    """
    transport_mode: TransportMode = "walking"
    avoid_tolls: bool = False
    avoid_ferries: bool = False
    prefer_green: bool = False


class LineString(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: List[List[float]] = Field(description="[longitude, latitude] pairs")


class RouteInstruction(BaseModel):
    """One turn-by-turn step covering geometry.coordinates[way_points[0]..way_points[1]]."""
    instruction: str
    distance_meters: float
    duration_seconds: float
    type: str = Field(description="Provider-defined step tag, e.g. depart, arrive, left")
    way_points: Tuple[int, int]


class RouteSummary(BaseModel):
    distance: float = Field(description="Total distance in meters")
    duration: float = Field(description="Total duration in seconds")
    ascent: Optional[float] = None
    descent: Optional[float] = None


class RouteResult(BaseModel):
    geometry: LineString
    distance_meters: float
    duration_seconds: float
    instructions: List[RouteInstruction]
    summary: RouteSummary


class OptimizedRoute(BaseModel):
    """Waypoints in visiting order (start and end unchanged) plus the route over them."""
    optimized_points: List[RoutePoint]
    route: RouteResult


class RouteRequest(BaseModel):
    """Body of POST /api/routes/build and /api/routes/optimize."""
    points: List[RoutePoint] = Field(description="Waypoints; at least 2 are required")
    options: RouteOptions = Field(default_factory=RouteOptions)
