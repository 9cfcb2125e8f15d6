# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Insert/fetch client for the content-addressed network.

``NetworkClient`` is the interface the scheduler and the fetcher depend on.
``HttpNetworkClient`` talks to a node's HTTP gateway:

- ``PUT {gateway}/insert?uri=<insert uri>`` with the document as body,
  answered with ``{"edition": <n>}``
- ``GET {gateway}/fetch?uri=<request uri>``, answered with the raw document

Both calls block until the network has answered; both raise
``TransportError`` on any failure.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

import httpx

from ..core.config import get_config
from ..core.exceptions import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class NetworkClient(Protocol):
    def publish(self, key: str, data: bytes) -> int:
        """Insert ``data`` under ``key``; return the edition that was inserted."""
        ...

    def fetch(self, uri: str) -> bytes:
        """Retrieve the document published under ``uri``."""
        ...


class HttpNetworkClient:
    """Blocking gateway client."""

    def __init__(
        self,
        gateway_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        config = get_config()
        self.base_url = (gateway_url if gateway_url is not None else config.gateway_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.gateway_timeout
        self._transport = transport

    def _request(self, method: str, path: str, uri: str, content: bytes | None = None) -> httpx.Response:
        """Execute a gateway request, mapping every failure to TransportError.

        Insert URIs contain the private key and are kept out of the error.
        """
        reported_uri = None if method == "PUT" else uri
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.request(method, f"{self.base_url}{path}", params={"uri": uri}, content=content)
        except httpx.TimeoutException as e:
            raise TransportError(f"Gateway timed out: {e}", uri=reported_uri) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Cannot reach gateway at {self.base_url}: {e}", uri=reported_uri) from e

        if resp.status_code >= 400:
            raise TransportError(f"Gateway returned {resp.status_code}: {resp.text[:200]}", uri=reported_uri)
        return resp

    def publish(self, key: str, data: bytes) -> int:
        resp = self._request("PUT", "/insert", key, content=data)
        try:
            edition = resp.json()["edition"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise TransportError(f"Unexpected insert reply: {resp.text[:200]}") from e
        if not isinstance(edition, int) or isinstance(edition, bool):
            raise TransportError(f"Unexpected insert edition: {edition!r}")
        logger.debug(f"Inserted {len(data)} bytes, edition {edition}")
        return edition

    def fetch(self, uri: str) -> bytes:
        resp = self._request("GET", "/fetch", uri)
        logger.debug(f"Fetched {len(resp.content)} bytes from {uri}")
        return resp.content
