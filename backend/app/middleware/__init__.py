"""
ArchiRoutes Backend: Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    The request ID is set first so the access log line can carry it;
    responses travel the chain in reverse.
"""
