"""Shared test helpers: URI builders and an in-memory network."""

from __future__ import annotations

import threading

from weboftrust.core.exceptions import TransportError


def make_uri(routing: str, crypto: str = "crypto", edition: int = 0) -> str:
    """A syntactically valid request URI whose identity id is ``routing``."""
    return f"USK@{routing},{crypto},AQACAAE/WoT/{edition}"


def make_insert_uri(routing: str, crypto: str = "crypto", edition: int = 0) -> str:
    return f"USK@{routing}-private,{crypto},AQECAAE/WoT/{edition}"


class FakeNetwork:
    """In-memory NetworkClient recording publishes; can be told to fail."""

    def __init__(self):
        self.published: list[tuple[str, bytes]] = []
        self.documents: dict[str, bytes] = {}
        self.fetched: list[str] = []
        self.fail_publish = False
        self.on_publish = None
        self._lock = threading.Lock()

    def publish(self, key: str, data: bytes) -> int:
        if self.on_publish is not None:
            self.on_publish(key, data)
        if self.fail_publish:
            raise TransportError("network unavailable")
        with self._lock:
            self.published.append((key, data))
        return int(key.rsplit("/", 1)[-1])

    def fetch(self, uri: str) -> bytes:
        self.fetched.append(uri)
        routing = uri.split("@", 1)[1].split(",", 1)[0]
        try:
            return self.documents[routing]
        except KeyError:
            raise TransportError("data not found", uri=uri) from None
