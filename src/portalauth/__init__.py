"""Credential lifecycle and app token management for the portal CLI."""

__version__ = "0.1.0"
