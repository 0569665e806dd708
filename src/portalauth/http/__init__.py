"""Authenticated HTTP access to the account APIs."""

from .client import PortalHttpClient

__all__ = ["PortalHttpClient"]
