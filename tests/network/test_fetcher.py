"""Tests for weboftrust.network.fetcher - importing published identity state."""

from __future__ import annotations

import json

import pytest

from weboftrust.core.exceptions import TransportError, UnknownIdentityError, ValidationError
from weboftrust.network.codec import FORMAT_VERSION
from weboftrust.network.fetcher import IdentityFetcher

from helpers import make_uri


def _publish(network, routing: str, **document) -> None:
    network.documents[routing] = json.dumps({"Version": FORMAT_VERSION, **document}).encode()


@pytest.fixture
def fetcher(store, network):
    return IdentityFetcher(store, network)


class TestIdentityFetcher:
    def test_fetch_imports_state(self, fetcher, network, store, own_factory, identity_factory):
        own_factory("A")
        identity_factory("B")
        store.set_trust("A", "B", 100)
        _publish(
            network,
            "B",
            Edition=3,
            Nickname="bob",
            Contexts=["Forum"],
            PublishesTrustList=True,
            TrustList=[{"Identity": make_uri("C"), "Value": 50, "Comment": "met at the forum"}],
        )

        identity = fetcher.fetch("B")

        assert identity.nickname == "bob"
        assert identity.edition == 3
        assert network.fetched == [make_uri("B")]
        assert store.get_trust("B", "C").comment == "met at the forum"
        assert store.get_score("A", "C").score == 20

    def test_own_identity_not_fetched(self, fetcher, network, own_factory):
        own_factory("A")

        fetcher.fetch("A")

        assert network.fetched == []

    def test_unknown_identity(self, fetcher):
        with pytest.raises(UnknownIdentityError):
            fetcher.fetch("nobody")

    def test_transport_error_propagates(self, fetcher, identity_factory):
        identity_factory("B")
        with pytest.raises(TransportError):
            fetcher.fetch("B")

    def test_malformed_document_leaves_graph_untouched(self, fetcher, network, store, identity_factory):
        identity_factory("B")
        junk = [{"Identity": "junk", "Value": 1}]
        _publish(network, "B", Edition=1, Nickname="bob", PublishesTrustList=True, TrustList=junk)

        with pytest.raises(ValidationError):
            fetcher.fetch("B")

        assert store.get_identity("B").nickname is None
        assert store.given_trusts("B") == []
