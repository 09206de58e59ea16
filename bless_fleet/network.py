"""Bless gateway client.

Thin async wrapper over the gateway REST API. Each method issues one request
and either returns a parsed pydantic model or raises a classified
``BlessFleetError``:

- ``TransportError``: the request never got a response (DNS, connect,
  proxy, timeout).
- ``UnauthorizedError``: HTTP 401/403, the account token was rejected.
- ``HttpStatusError``: any other non-2xx status.
- ``ParseError``: the body was not the JSON the gateway promises.

Clients are cheap to share: one instance per account is used by every
supervisor of that account's nodes.

Usage:
    session = get_client_session(timeout=ClientTimeout(total=30), proxy=account.proxy)
    client = BlessClient(session, account.token)
    nodes = await client.list_nodes()
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiohttp_socks import ProxyConnector
from pydantic import BaseModel, TypeAdapter, ValidationError

from bless_fleet.config import DEFAULT_API_BASE_URL, DEFAULT_IP_LOOKUP_URL
from bless_fleet.errors import (
    ConfigurationError,
    HttpStatusError,
    ParseError,
    TransportError,
    UnauthorizedError,
)
from bless_fleet.metrics import observe_request
from bless_fleet.models import ApiResponse, IpResponse, Node

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_NODE_LIST = TypeAdapter(List[Node])

_PROXY_SCHEMES = ("http://", "https://", "socks4://", "socks5://")


def normalize_proxy_url(proxy: str) -> str:
    """Return a proxy URL with an explicit scheme.

    ``socks4://``/``socks5://`` and ``http(s)://`` URLs pass through; bare
    ``host:port`` or ``user:pass@host:port`` values are treated as HTTP proxies.
    """
    proxy = (proxy or "").strip()
    if not proxy:
        raise ConfigurationError("Proxy URL is empty")
    lowered = proxy.lower()
    if lowered.startswith(_PROXY_SCHEMES):
        return proxy
    if lowered.startswith("socks"):
        raise ConfigurationError(
            "Unsupported SOCKS proxy scheme",
            context={"proxy": proxy.split("@")[-1]},
        )
    if "://" in proxy:
        raise ConfigurationError(
            "Unsupported proxy scheme",
            context={"proxy": proxy.split("@")[-1]},
        )
    return f"http://{proxy}"


def get_client_session(
    timeout: Optional[ClientTimeout] = None,
    proxy: Optional[str] = None,
) -> ClientSession:
    """Create an aiohttp ClientSession with optional HTTP/SOCKS proxy support."""
    if proxy:
        try:
            connector = ProxyConnector.from_url(normalize_proxy_url(proxy))
        except ValueError as e:
            raise ConfigurationError(f"Invalid proxy URL: {e}") from e
        return ClientSession(connector=connector, timeout=timeout)
    return ClientSession(timeout=timeout)


class BlessClient:
    """Gateway client bound to one account credential and outbound route."""

    def __init__(
        self,
        session: ClientSession,
        access_token: str,
        base_url: str = DEFAULT_API_BASE_URL,
        ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL,
        proxy: Optional[str] = None,
    ):
        self._session = session
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._ip_lookup_url = ip_lookup_url
        self.proxy = proxy
        # Externally visible address; only known once what_my_addr() ran.
        self.address: Optional[str] = None

    def __repr__(self) -> str:
        return f"BlessClient(base_url={self._base_url!r}, address={self.address!r})"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        model: Type[M] | TypeAdapter,
        json_body: Optional[Dict[str, Any]] = None,
        authorized: bool = True,
    ) -> Any:
        kwargs: Dict[str, Any] = {}
        if authorized:
            kwargs["headers"] = self._headers()
        if json_body is not None:
            kwargs["json"] = json_body

        with observe_request(operation):
            try:
                async with self._session.request(method, url, **kwargs) as resp:
                    status = resp.status
                    body = await resp.read()
            except asyncio.TimeoutError as e:
                raise TransportError(f"Timed out during {operation}", url=url) from e
            except ClientError as e:
                raise TransportError(f"Failed to send {operation} request: {e}", url=url) from e

        if status in (401, 403):
            raise UnauthorizedError(f"{operation} rejected the access token", status=status)
        if not 200 <= status < 300:
            raise HttpStatusError(f"{operation} failed: HTTP {status}", status=status, url=url)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to parse {operation} response: {e}", context={"url": url}) from e

        try:
            if isinstance(model, TypeAdapter):
                return model.validate_python(payload)
            return model.model_validate(payload)
        except ValidationError as e:
            raise ParseError(
                f"Unexpected {operation} response shape",
                context={"url": url, "errors": e.error_count()},
            ) from e

    async def list_nodes(self) -> List[Node]:
        """Fetch every node registered to this account."""
        return await self._request("list_nodes", "GET", f"{self._base_url}/nodes", _NODE_LIST)

    async def register_node(
        self,
        pub_key: str,
        hardware_id: str,
        ip_address: Optional[str] = None,
    ) -> ApiResponse:
        """Register (or re-register) a node with its hardware id and address."""
        logger.info(f"Registering node {pub_key} with IP: {ip_address}, Hardware ID: {hardware_id}")
        body: Dict[str, Any] = {"hardwareId": hardware_id}
        if ip_address:
            body["ipAddress"] = ip_address
        data = await self._request(
            "register", "POST", f"{self._base_url}/nodes/{pub_key}", ApiResponse, json_body=body
        )
        logger.info(f"Registration response for {pub_key}: {data.status}")
        return data

    async def start_session(self, pub_key: str) -> ApiResponse:
        """Open a liveness session for a registered node."""
        logger.info(f"Starting session for node {pub_key}, it might take a while...")
        data = await self._request(
            "start_session", "POST", f"{self._base_url}/nodes/{pub_key}/start-session", ApiResponse
        )
        logger.info(f"Start session response for {pub_key}: {data.status}")
        return data

    async def stop_session(self, pub_key: str) -> ApiResponse:
        """Close the node's session."""
        return await self._request(
            "stop_session", "POST", f"{self._base_url}/nodes/{pub_key}/stop-session", ApiResponse
        )

    async def ping(self, pub_key: str) -> ApiResponse:
        """Send one heartbeat for the node."""
        return await self._request(
            "ping", "POST", f"{self._base_url}/nodes/{pub_key}/ping", ApiResponse
        )

    async def what_my_addr(self) -> str:
        """Ask the lookup service for the address the gateway will see."""
        data = await self._request(
            "ip_lookup", "GET", self._ip_lookup_url, IpResponse, authorized=False
        )
        logger.info(f"IP fetch response: {data.ip}")
        self.address = data.ip
        return data.ip

    async def close(self) -> None:
        if not self._session.closed:
            await self._session.close()
