"""URL helpers shared by the client request helpers and the multipart pipeline."""

from typing import Optional


def build_full_url(base_url: Optional[str], route: str) -> str:
    """
    Join a base URL and a route with exactly one slash between them.

    >>> build_full_url("https://api.example.com", "/users")
    'https://api.example.com/users'
    >>> build_full_url(None, "users")
    '/users'
    """
    route = route.lstrip("/")
    if base_url is None:
        return f"/{route}"
    return f"{base_url.rstrip('/')}/{route}"
