"""
ArchiRoutes Backend: Services Layer
====================================

What:  Business logic between the routes (HTTP) and the catalog / routing providers.
How:   Services receive their collaborators (a GeodataStore, a RoutingBackend)
       through the constructor, so tests substitute mocks without patching.

Service Inventory:
    Duplicate detection
        - DuplicateDetectionService: full check, quick search, nearby search
        - DuplicateCheckSession: debounced as-you-type checks for one form
        - GeodataStore / SqlGeodataStore: catalog lookups (tenacity retries)
    Routing
        - RoutingService: build_route, optimize_route
        - RoutingBackend variants: StraightLineBackend, OpenRouteServiceBackend,
          MapboxBackend (the last two share ProviderBackend)
        - CircuitBreaker: one per external provider
    Helpers
        - geo.haversine_distance, formatting.format_distance / format_duration
"""
