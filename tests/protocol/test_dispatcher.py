"""Tests for weboftrust.protocol - message handlers and the dispatcher.

Tests cover:
- Every request message and its reply shape
- Error replies for missing parameters, unknown identities and bad values
- Numbered, contiguous list replies and "null" for absent values
"""

from __future__ import annotations

import logging

import pytest

from weboftrust.core.exceptions import ValidationError
from weboftrust.protocol.dispatcher import Dispatcher, error_reply
from weboftrust.protocol.handlers import HANDLERS, MessageType, parse_bool, require
from weboftrust.web_of_trust import WebOfTrust

from helpers import make_insert_uri, make_uri


@pytest.fixture
def wot(store):
    return WebOfTrust(store=store)


@pytest.fixture
def dispatcher(wot):
    return Dispatcher(wot)


@pytest.fixture
def graph(store, own_factory, identity_factory):
    """alice (own) trusts bob 100 and carol -50; bob trusts carol 50."""
    own_factory("A", nickname="alice", contexts=["Forum"])
    identity_factory("B", nickname="bob")
    identity_factory("C", nickname="carol")
    store.add_context("B", "Forum")
    store.set_trust("A", "B", 100, "friend")
    store.set_trust("A", "C", -50)
    store.set_trust("B", "C", 50)
    return store


def _rows(reply: dict, key: str) -> list[str]:
    """Collect Key1, Key2, ... until the first gap."""
    values = []
    while f"{key}{len(values) + 1}" in reply:
        values.append(reply[f"{key}{len(values) + 1}"])
    return values


class TestHelpers:
    def test_require(self):
        assert require({"A": " x "}, "A") == "x"
        for params in ({}, {"A": ""}, {"A": "  "}):
            with pytest.raises(ValidationError):
                require(params, "A")

    @pytest.mark.parametrize("text,value", [("true", True), ("FALSE", False), (" True ", True)])
    def test_parse_bool(self, text, value):
        assert parse_bool(text, "Flag") is value

    def test_parse_bool_rejects(self):
        with pytest.raises(ValidationError):
            parse_bool("yes", "Flag")

    def test_every_message_has_a_handler(self):
        assert set(HANDLERS) == set(MessageType)

    def test_error_reply(self):
        assert error_reply(None, "bad", "ValidationError") == {
            "Message": "Error",
            "OriginalMessage": "null",
            "Description": "bad",
            "ErrorType": "ValidationError",
        }


class TestDispatcher:
    def test_missing_message(self, dispatcher):
        reply = dispatcher.handle({})
        assert reply["Message"] == "Error"
        assert reply["OriginalMessage"] == "null"
        assert reply["ErrorType"] == "ValidationError"

    def test_unknown_message(self, dispatcher):
        reply = dispatcher.handle({"Message": "Explode"})
        assert reply["OriginalMessage"] == "Explode"
        assert "Unknown message" in reply["Description"]

    def test_unexpected_exception(self, wot, caplog):
        def handler(wot, params):
            raise RuntimeError("boom")

        dispatcher = Dispatcher(wot, handlers={"Boom": handler})
        with caplog.at_level(logging.ERROR, logger="weboftrust.protocol.dispatcher"):
            reply = dispatcher.handle({"Message": "Boom"})

        assert reply["Description"] == "Internal error: boom"
        assert reply["ErrorType"] == "RuntimeError"
        assert "Unexpected error handling Boom" in caplog.text

    def test_insert_uri_not_logged(self, dispatcher, caplog):
        with caplog.at_level(logging.DEBUG, logger="weboftrust.protocol.requests"):
            dispatcher.handle(
                {
                    "Message": "CreateIdentity",
                    "NickName": "alice",
                    "PublishTrustList": "true",
                    "Context": "Forum",
                    "InsertURI": make_insert_uri("A"),
                    "RequestURI": make_uri("A"),
                }
            )

        records = [r for r in caplog.records if r.getMessage() == "Request: CreateIdentity"]
        assert records[0].extra_data["params"]["InsertURI"] == "[REDACTED]"


class TestCreateIdentity:
    def test_generated_keys(self, dispatcher, store):
        reply = dispatcher.handle(
            {"Message": "CreateIdentity", "NickName": "alice", "PublishTrustList": "true", "Context": "Forum"}
        )

        assert reply["Message"] == "IdentityCreated"
        own = store.get_own_identity(reply["ID"])
        assert (own.insert_uri, own.request_uri) == (reply["InsertURI"], reply["RequestURI"])
        assert own.contexts == frozenset({"Forum"})

    def test_given_keys(self, dispatcher):
        reply = dispatcher.handle(
            {
                "Message": "CreateIdentity",
                "NickName": "alice",
                "PublishTrustList": "false",
                "Context": "Forum",
                "InsertURI": make_insert_uri("A"),
                "RequestURI": make_uri("A"),
            }
        )
        assert reply["ID"] == "A"

    def test_introduction_puzzles(self, dispatcher, store):
        reply = dispatcher.handle(
            {
                "Message": "CreateIdentity",
                "NickName": "alice",
                "PublishTrustList": "true",
                "Context": "Forum",
                "PublishIntroductionPuzzles": "true",
            }
        )

        own = store.get_own_identity(reply["ID"])
        assert own.contexts == frozenset({"Forum", "Introduction"})
        assert own.properties == {"IntroductionPuzzleCount": "10"}

    def test_no_puzzles_without_trust_list(self, dispatcher, store):
        reply = dispatcher.handle(
            {
                "Message": "CreateIdentity",
                "NickName": "alice",
                "PublishTrustList": "false",
                "Context": "Forum",
                "PublishIntroductionPuzzles": "true",
            }
        )
        assert "Introduction" not in store.get_own_identity(reply["ID"]).contexts

    @pytest.mark.parametrize(
        "params",
        [
            {"PublishTrustList": "true", "Context": "Forum"},
            {"NickName": "alice", "Context": "Forum"},
            {"NickName": "alice", "PublishTrustList": "true"},
            {"NickName": "alice", "PublishTrustList": "maybe", "Context": "Forum"},
            {"NickName": "alice", "PublishTrustList": "true", "Context": "Forum", "RequestURI": make_uri("A")},
        ],
    )
    def test_invalid(self, dispatcher, params):
        reply = dispatcher.handle({"Message": "CreateIdentity", **params})
        assert reply["Message"] == "Error"
        assert reply["OriginalMessage"] == "CreateIdentity"
        assert reply["ErrorType"] == "ValidationError"


class TestIdentityQueries:
    def test_add_identity(self, dispatcher, store):
        reply = dispatcher.handle({"Message": "AddIdentity", "RequestURI": make_uri("D")})

        assert reply == {"Message": "IdentityAdded", "RequestURI": make_uri("D")}
        assert store.has_identity("D")

        duplicate = dispatcher.handle({"Message": "AddIdentity", "RequestURI": make_uri("D")})
        assert duplicate["ErrorType"] == "DuplicateIdentityError"

    def test_get_identity(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "GetIdentity", "TreeOwner": "A", "Identity": "B"})

        assert reply == {
            "Message": "Identity",
            "Nickname": "bob",
            "RequestURI": make_uri("B"),
            "Trust": "100",
            "Score": "100",
            "Rank": "1",
            "Context1": "Forum",
        }

    def test_get_identity_outside_tree(self, dispatcher, graph, identity_factory):
        identity_factory("D")

        reply = dispatcher.handle({"Message": "GetIdentity", "TreeOwner": "A", "Identity": make_uri("D")})

        assert (reply["Nickname"], reply["Trust"], reply["Score"], reply["Rank"]) == ("null",) * 4

    def test_get_identity_needs_own_tree_owner(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "GetIdentity", "TreeOwner": "B", "Identity": "C"})
        assert reply["ErrorType"] == "UnknownIdentityError"

    def test_get_own_identities(self, dispatcher, graph, own_factory):
        own_factory("Z", nickname="aaron")

        reply = dispatcher.handle({"Message": "GetOwnIdentities"})

        assert _rows(reply, "Nickname") == ["aaron", "alice"]
        assert _rows(reply, "Identity") == ["Z", "A"]
        assert reply["InsertURI2"] == make_insert_uri("A")

    def test_identities_by_score(self, dispatcher, graph):
        positive = dispatcher.handle(
            {"Message": "GetIdentitiesByScore", "TreeOwner": "A", "Select": "+", "Context": "all"}
        )
        negative = dispatcher.handle(
            {"Message": "GetIdentitiesByScore", "TreeOwner": "A", "Select": "-", "Context": "all"}
        )
        zero = dispatcher.handle({"Message": "GetIdentitiesByScore", "TreeOwner": "A", "Select": "0", "Context": "all"})

        # carol: -50 from alice, +20 from bob
        assert _rows(positive, "Identity") == ["B"]
        assert _rows(negative, "Identity") == ["C"]
        assert negative["Score1"] == "-30"
        assert negative["Rank1"] == "2"
        assert _rows(zero, "Identity") == []

    def test_identities_by_score_context_filter(self, dispatcher, graph):
        graph.set_trust("A", "C", 100)

        reply = dispatcher.handle(
            {"Message": "GetIdentitiesByScore", "TreeOwner": "A", "Select": "+", "Context": "Forum"}
        )

        assert _rows(reply, "Identity") == ["B"]
        assert "Identity2" not in reply

    def test_identities_by_score_without_tree_owner(self, dispatcher, graph, own_factory):
        own_factory("X", nickname="xavier")
        graph.set_trust("X", "A", 100)

        reply = dispatcher.handle({"Message": "GetIdentitiesByScore", "Select": "+", "Context": "all"})

        # B is listed once per tree it is in
        assert sorted(_rows(reply, "Identity")) == ["A", "B", "B"]

    @pytest.mark.parametrize(
        "params",
        [
            {"TreeOwner": "A", "Context": "all"},
            {"TreeOwner": "A", "Select": "?", "Context": "all"},
            {"TreeOwner": "A", "Select": "+"},
        ],
    )
    def test_identities_by_score_invalid(self, dispatcher, graph, params):
        reply = dispatcher.handle({"Message": "GetIdentitiesByScore", **params})
        assert reply["ErrorType"] == "ValidationError"

    def test_trusters_and_trustees(self, dispatcher, graph):
        trusters = dispatcher.handle({"Message": "GetTrusters", "Identity": "C", "Context": "all"})
        trustees = dispatcher.handle({"Message": "GetTrustees", "Identity": "A", "Context": "all"})

        assert _rows(trusters, "Identity") == ["B", "A"]
        assert _rows(trusters, "Value") == ["50", "-50"]
        assert _rows(trustees, "Nickname") == ["bob", "carol"]
        assert _rows(trustees, "Comment") == ["friend", ""]

    def test_trustees_context_filter(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "GetTrustees", "Identity": "A", "Context": "Forum"})
        assert _rows(reply, "Identity") == ["B"]

    def test_trusters_need_context(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "GetTrusters", "Identity": "C"})
        assert reply["ErrorType"] == "ValidationError"


class TestOwnIdentityMessages:
    def test_set_and_remove_trust(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "SetTrust", "Truster": "A", "Trustee": "C", "Value": "10"})
        assert reply == {"Message": "TrustSet"}
        assert graph.get_trust("A", "C").comment == ""

        reply = dispatcher.handle({"Message": "RemoveTrust", "Truster": "A", "Trustee": "C"})
        assert reply == {"Message": "TrustRemoved"}

        again = dispatcher.handle({"Message": "RemoveTrust", "Truster": "A", "Trustee": "C"})
        assert again["ErrorType"] == "NotTrustedError"

    def test_set_trust_errors(self, dispatcher, graph):
        remote = dispatcher.handle({"Message": "SetTrust", "Truster": "B", "Trustee": "C", "Value": "10"})
        out_of_range = dispatcher.handle({"Message": "SetTrust", "Truster": "A", "Trustee": "C", "Value": "101"})
        unknown = dispatcher.handle({"Message": "SetTrust", "Truster": "A", "Trustee": "nobody", "Value": "1"})

        assert remote["ErrorType"] == "UnknownIdentityError"
        assert out_of_range["ErrorType"] == "ValidationError"
        assert unknown["ErrorType"] == "UnknownIdentityError"
        assert graph.get_trust("B", "C").value == 50

    def test_contexts(self, dispatcher, graph):
        assert dispatcher.handle({"Message": "AddContext", "Identity": "A", "Context": "Chat"}) == {
            "Message": "ContextAdded"
        }
        assert "Chat" in graph.get_identity("A").contexts

        assert dispatcher.handle({"Message": "RemoveContext", "Identity": "A", "Context": "Chat"}) == {
            "Message": "ContextRemoved"
        }
        missing = dispatcher.handle({"Message": "RemoveContext", "Identity": "A", "Context": "Chat"})
        assert missing["ErrorType"] == "NotFoundError"

    def test_context_on_remote_identity(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "AddContext", "Identity": "B", "Context": "Chat"})
        assert reply["ErrorType"] == "UnknownIdentityError"

    def test_properties(self, dispatcher, graph):
        assert dispatcher.handle({"Message": "SetProperty", "Identity": "A", "Property": "Avatar", "Value": ""}) == {
            "Message": "PropertyAdded"
        }
        assert dispatcher.handle({"Message": "GetProperty", "Identity": "A", "Property": "Avatar"}) == {
            "Message": "PropertyValue",
            "Property": "",
        }
        assert dispatcher.handle({"Message": "RemoveProperty", "Identity": "A", "Property": "Avatar"}) == {
            "Message": "PropertyRemoved"
        }

        missing = dispatcher.handle({"Message": "GetProperty", "Identity": "A", "Property": "Avatar"})
        assert missing["ErrorType"] == "NotFoundError"

    def test_set_property_needs_value(self, dispatcher, graph):
        reply = dispatcher.handle({"Message": "SetProperty", "Identity": "A", "Property": "Avatar"})
        assert reply["ErrorType"] == "ValidationError"
