"""Authenticated async HTTP client for account-scoped API calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.message import Message
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import httpx

from ..auth.exchange import api_origin
from ..auth.resolver import AccountAuthResolver, AccountConfigStore
from ..errors import TransportError

logger = logging.getLogger(__name__)


USER_AGENT = "portalauth/0.1"


def _filename_from_content_disposition(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    message = Message()
    message["content-disposition"] = header
    filename = message.get_filename()
    return Path(filename).name if filename else None


@dataclass
class PortalHttpClient:
    """Executes requests on behalf of a configured account.

    Every request carries ``portalId=<account_id>`` and the account's resolved
    credential: API keys as the ``hapikey`` query parameter, everything else
    as a bearer ``Authorization`` header.

    Example:
        client = PortalHttpClient(store, AccountAuthResolver(store))
        data = await client.get(123, "localdevauth/v1/auth/check-scopes")
    """

    config_store: AccountConfigStore
    resolver: AccountAuthResolver
    timeout: float = 15.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    # ------------------------------------------------------------------
    # JSON requests
    # ------------------------------------------------------------------

    async def get(
        self,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("GET", account_id, path, query=query, headers=headers)

    async def post(
        self,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("POST", account_id, path, query=query, json=json, headers=headers)

    async def put(
        self,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("PUT", account_id, path, query=query, json=json, headers=headers)

    async def patch(
        self,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("PATCH", account_id, path, query=query, json=json, headers=headers)

    async def delete(
        self,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("DELETE", account_id, path, query=query, headers=headers)

    async def request(
        self,
        method: str,
        account_id: int,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send an authenticated request and return the parsed JSON body.

        Returns None for empty bodies.

        Raises:
            TransportError: On connection failures and non-2xx responses
            AuthResolutionError: When the account's credential cannot be resolved
        """
        url, params, request_headers = await self._prepare(account_id, path, query, headers)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=request_headers
                )
        except httpx.HTTPError as exc:
            logger.error(f"{method} {path} for account {account_id} failed: {exc}")
            raise TransportError(f"{method} {path} failed: {exc}", method=method, url=url) from exc

        _raise_for_status(response, method, url)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Binary downloads
    # ------------------------------------------------------------------

    async def get_octet_stream(
        self,
        account_id: int,
        path: str,
        dest: Path,
        *,
        query: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """Stream a binary response body to ``dest``.

        When ``dest`` is an existing directory the file name is taken from the
        response's ``Content-Disposition`` header. Returns the written path.
        """
        dest = Path(dest)
        url, params, headers = await self._prepare(
            account_id, path, query, {"Accept": "application/octet-stream"}
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                async with client.stream("GET", url, params=params, headers=headers) as response:
                    if response.is_error:
                        await response.aread()
                        _raise_for_status(response, "GET", url)

                    filepath = dest
                    if dest.is_dir():
                        filename = _filename_from_content_disposition(
                            response.headers.get("content-disposition")
                        )
                        if not filename:
                            raise TransportError(
                                "Response has no Content-Disposition filename",
                                status_code=response.status_code,
                                method="GET",
                                url=url,
                            )
                        filepath = dest / filename
                    filepath.parent.mkdir(parents=True, exist_ok=True)
                    with open(filepath, "wb") as fp:
                        async for chunk in response.aiter_bytes():
                            fp.write(chunk)
        except httpx.HTTPError as exc:
            logger.error(f"Download of {path} for account {account_id} failed: {exc}")
            raise TransportError(f"GET {path} failed: {exc}", method="GET", url=url) from exc

        logger.debug(f"Wrote {filepath}")
        return filepath

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _prepare(
        self,
        account_id: int,
        path: str,
        query: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        credential = await self.resolver.resolve_account_credential(account_id)
        params: Dict[str, Any] = {k: v for k, v in (query or {}).items() if v is not None}
        params["portalId"] = account_id
        request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        request_headers.update(headers or {})
        credential.apply(request_headers, params)
        url = f"{api_origin(self.config_store.get_env(account_id))}/{path.lstrip('/')}"
        return url, params, request_headers


def _raise_for_status(response: httpx.Response, method: str, url: str) -> None:
    if not response.is_error:
        return
    raise TransportError(
        f"{method} {response.request.url.path} returned {response.status_code}",
        status_code=response.status_code,
        method=method,
        url=url,
        response_body=response.text,
    )


__all__ = ["PortalHttpClient"]
