# wine_api/auth/__init__.py
"""
Authentication modules for the Wine Reviewer API.

This package contains:
- identity.py: Request principal (authenticated or not, with a reason)
- google.py: Google ID token verification against Google's published keys
"""
from wine_api.auth.identity import Identity

__all__ = ["Identity"]
