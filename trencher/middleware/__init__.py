"""
Trencher — Middleware Package
===============================

Two kinds of middleware live here:

App-wide (Starlette ``BaseHTTPMiddleware``, installed by ``install_trencher``):
    - request_id.py:  X-Request-ID correlation
    - logging.py:     access log

Chain stages (run inside a route's ``MiddlewareChain``):
    - upload.py:      file uploads (``configure_upload``)
    - validation.py:  validation gate (``validation_gate``)

Execution order for a request:
    Request → [Request ID] → [Access log] → route chain
              (mws → upload → validate → handler)
"""
