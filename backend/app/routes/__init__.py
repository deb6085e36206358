"""
ArchiRoutes Backend: API Routes Package
========================================

Route Inventory:
    - buildings.py:  POST /api/buildings/duplicates/check  (full duplicate check)
                     GET  /api/buildings/similar           (quick name search)
                     GET  /api/buildings/nearby            (radius search)
    - routing.py:    POST /api/routes/build                (route in given order)
                     POST /api/routes/optimize             (reorder + route)
    - health.py:     GET  /health                          (service health check)

Routes stay thin: extract the request data, call the service, return its
model. Business logic lives in app.services.
"""
