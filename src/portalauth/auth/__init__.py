"""Credential resolution and app-token lifecycle."""

from .audit import AuditEvent, AuditLogger
from .credential_manager import AccountSession, CredentialManager
from .endpoints import AuthEndpoints, HttpAuthEndpoints
from .exchange import TokenExchangeClient
from .models import SAFETY_MARGIN, BearerCredential, CacheKey, ManagerState, TokenRecord
from .refresh_scheduler import RefreshScheduler
from .resolver import AccountAuthResolver, AccountConfigStore
from .scopes import (
    TOKEN_MANAGEMENT_READ,
    TOKEN_MANAGEMENT_SCOPES,
    TOKEN_MANAGEMENT_WRITE,
    ScopeSet,
)
from .token_cache import TokenCache

__all__ = [
    "AccountAuthResolver",
    "AccountConfigStore",
    "AccountSession",
    "AuditEvent",
    "AuditLogger",
    "AuthEndpoints",
    "BearerCredential",
    "CacheKey",
    "CredentialManager",
    "HttpAuthEndpoints",
    "ManagerState",
    "RefreshScheduler",
    "SAFETY_MARGIN",
    "ScopeSet",
    "TOKEN_MANAGEMENT_READ",
    "TOKEN_MANAGEMENT_SCOPES",
    "TOKEN_MANAGEMENT_WRITE",
    "TokenCache",
    "TokenExchangeClient",
    "TokenRecord",
]
