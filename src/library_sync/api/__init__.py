"""HTTP access to the remote API."""

from .client import API_BASE_URL, APIClient

__all__ = ["API_BASE_URL", "APIClient"]
