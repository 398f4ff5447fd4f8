"""
Trencher — Web Plumbing Helpers
=================================

What: Thin, reusable wrappers around everyday web-app plumbing.

    ┌──────────────────────────────────────────────┐
    │  Server (FastAPI)                            │
    │    routing/     CRUD + custom route chains   │
    │    middleware/  upload, validation, logging  │
    │    app.py       exception handlers, factory  │
    ├──────────────────────────────────────────────┤
    │  Client (httpx)                              │
    │    client/      request helpers, multipart   │
    ├──────────────────────────────────────────────┤
    │  Shared                                      │
    │    exceptions.py  config.py  logger.py       │
    └──────────────────────────────────────────────┘
"""

__version__ = "1.0.0"

from trencher.exceptions import ErrorKind, TrencherError, handle_error, print_error  # noqa: E402

__all__ = ["ErrorKind", "TrencherError", "__version__", "handle_error", "print_error"]
