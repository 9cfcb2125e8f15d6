# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Protocol message handlers.

Each handler takes the node and the request parameters (a flat
``str -> str`` mapping) and returns the reply parameters. Handlers raise
``WotException`` subclasses on failure; turning them into ``Error`` replies
is the dispatcher's job.

Lists are returned as numbered keys (``Identity1``, ``Nickname1``, ...),
numbered from 1 and contiguous over the rows actually returned.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from ..core.exceptions import ValidationError
from ..graph.models import Identity
from ..scoring.engine import parse_sign
from ..web_of_trust import WebOfTrust

Params = Mapping[str, str]
Reply = dict[str, str]

NULL = "null"


class MessageType(StrEnum):
    """Request messages."""

    CREATE_IDENTITY = "CreateIdentity"
    SET_TRUST = "SetTrust"
    REMOVE_TRUST = "RemoveTrust"
    ADD_IDENTITY = "AddIdentity"
    GET_IDENTITY = "GetIdentity"
    GET_OWN_IDENTITIES = "GetOwnIdentities"
    GET_IDENTITIES_BY_SCORE = "GetIdentitiesByScore"
    GET_TRUSTERS = "GetTrusters"
    GET_TRUSTEES = "GetTrustees"
    ADD_CONTEXT = "AddContext"
    REMOVE_CONTEXT = "RemoveContext"
    SET_PROPERTY = "SetProperty"
    GET_PROPERTY = "GetProperty"
    REMOVE_PROPERTY = "RemoveProperty"


class ReplyType(StrEnum):
    """Reply messages."""

    IDENTITY_CREATED = "IdentityCreated"
    TRUST_SET = "TrustSet"
    TRUST_REMOVED = "TrustRemoved"
    IDENTITY_ADDED = "IdentityAdded"
    IDENTITY = "Identity"
    OWN_IDENTITIES = "OwnIdentities"
    IDENTITIES = "Identities"
    CONTEXT_ADDED = "ContextAdded"
    CONTEXT_REMOVED = "ContextRemoved"
    PROPERTY_ADDED = "PropertyAdded"
    PROPERTY_VALUE = "PropertyValue"
    PROPERTY_REMOVED = "PropertyRemoved"
    ERROR = "Error"


# =============================================================================
# PARAMETER HELPERS
# =============================================================================


def require(params: Params, name: str) -> str:
    """Mandatory parameter; missing or blank is a ValidationError."""
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing mandatory parameter: {name}", field=name)
    return value.strip() if isinstance(value, str) else value


def optional(params: Params, name: str) -> str | None:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value.strip() if isinstance(value, str) else value


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ValidationError(f"{name} must be 'true' or 'false'", field=name, value=value)


def _text(value: Any) -> str:
    return NULL if value is None else str(value)


def _reply(reply_type: ReplyType, **fields: Any) -> Reply:
    reply = {"Message": reply_type.value}
    reply.update({k: _text(v) for k, v in fields.items()})
    return reply


# =============================================================================
# IDENTITY HANDLERS
# =============================================================================


def handle_create_identity(wot: WebOfTrust, params: Params) -> Reply:
    nickname = require(params, "NickName")
    publish_trust_list = parse_bool(require(params, "PublishTrustList"), "PublishTrustList")
    context = require(params, "Context")
    puzzles = optional(params, "PublishIntroductionPuzzles")

    own = wot.create_identity(
        nickname,
        publish_trust_list=publish_trust_list,
        context=context,
        insert_uri=optional(params, "InsertURI"),
        request_uri=optional(params, "RequestURI"),
        publish_introduction_puzzles=parse_bool(puzzles, "PublishIntroductionPuzzles") if puzzles else False,
    )
    return _reply(ReplyType.IDENTITY_CREATED, ID=own.id, InsertURI=own.insert_uri, RequestURI=own.request_uri)


def handle_add_identity(wot: WebOfTrust, params: Params) -> Reply:
    identity = wot.add_identity(require(params, "RequestURI"))
    return _reply(ReplyType.IDENTITY_ADDED, RequestURI=identity.request_uri)


def handle_get_identity(wot: WebOfTrust, params: Params) -> Reply:
    identity, trust, score = wot.identity_report(require(params, "TreeOwner"), require(params, "Identity"))
    reply = _reply(
        ReplyType.IDENTITY,
        Nickname=identity.nickname,
        RequestURI=identity.request_uri,
        Trust=trust.value if trust else None,
        Score=score.score if score else None,
        Rank=score.rank if score else None,
    )
    for i, context in enumerate(sorted(identity.contexts), start=1):
        reply[f"Context{i}"] = context
    return reply


def handle_get_own_identities(wot: WebOfTrust, params: Params) -> Reply:
    reply = _reply(ReplyType.OWN_IDENTITIES)
    for i, own in enumerate(wot.own_identities(), start=1):
        reply[f"Identity{i}"] = own.id
        reply[f"RequestURI{i}"] = own.request_uri
        reply[f"InsertURI{i}"] = own.insert_uri
        reply[f"Nickname{i}"] = _text(own.nickname)
    return reply


def handle_get_identities_by_score(wot: WebOfTrust, params: Params) -> Reply:
    sign = parse_sign(require(params, "Select"))
    context = require(params, "Context")
    rows = wot.identities_by_score(optional(params, "TreeOwner"), sign, context)

    reply = _reply(ReplyType.IDENTITIES)
    for i, (identity, score) in enumerate(rows, start=1):
        reply[f"Identity{i}"] = identity.id
        reply[f"RequestURI{i}"] = identity.request_uri
        reply[f"Nickname{i}"] = _text(identity.nickname)
        reply[f"Score{i}"] = str(score.score)
        reply[f"Rank{i}"] = str(score.rank)
    return reply


def _trust_list_reply(rows: list[tuple[Identity, Any]]) -> Reply:
    reply = _reply(ReplyType.IDENTITIES)
    for i, (identity, trust) in enumerate(rows, start=1):
        reply[f"Identity{i}"] = identity.id
        reply[f"RequestURI{i}"] = identity.request_uri
        reply[f"Nickname{i}"] = _text(identity.nickname)
        reply[f"Value{i}"] = str(trust.value)
        reply[f"Comment{i}"] = trust.comment
    return reply


def handle_get_trusters(wot: WebOfTrust, params: Params) -> Reply:
    context = require(params, "Context")
    return _trust_list_reply(wot.trusters(require(params, "Identity"), context))


def handle_get_trustees(wot: WebOfTrust, params: Params) -> Reply:
    context = require(params, "Context")
    return _trust_list_reply(wot.trustees(require(params, "Identity"), context))


# =============================================================================
# OWN IDENTITY HANDLERS
# =============================================================================


def handle_set_trust(wot: WebOfTrust, params: Params) -> Reply:
    wot.set_trust(
        require(params, "Truster"),
        require(params, "Trustee"),
        require(params, "Value"),
        params.get("Comment") or "",
    )
    return _reply(ReplyType.TRUST_SET)


def handle_remove_trust(wot: WebOfTrust, params: Params) -> Reply:
    wot.remove_trust(require(params, "Truster"), require(params, "Trustee"))
    return _reply(ReplyType.TRUST_REMOVED)


def handle_add_context(wot: WebOfTrust, params: Params) -> Reply:
    wot.add_context(require(params, "Identity"), require(params, "Context"))
    return _reply(ReplyType.CONTEXT_ADDED)


def handle_remove_context(wot: WebOfTrust, params: Params) -> Reply:
    wot.remove_context(require(params, "Identity"), require(params, "Context"))
    return _reply(ReplyType.CONTEXT_REMOVED)


def handle_set_property(wot: WebOfTrust, params: Params) -> Reply:
    value = params.get("Value")
    if value is None:
        raise ValidationError("Missing mandatory parameter: Value", field="Value")
    wot.set_property(require(params, "Identity"), require(params, "Property"), value)
    return _reply(ReplyType.PROPERTY_ADDED)


def handle_get_property(wot: WebOfTrust, params: Params) -> Reply:
    value = wot.get_property(require(params, "Identity"), require(params, "Property"))
    return _reply(ReplyType.PROPERTY_VALUE, Property=value)


def handle_remove_property(wot: WebOfTrust, params: Params) -> Reply:
    wot.remove_property(require(params, "Identity"), require(params, "Property"))
    return _reply(ReplyType.PROPERTY_REMOVED)


HANDLERS = {
    # Identities
    MessageType.CREATE_IDENTITY: handle_create_identity,
    MessageType.ADD_IDENTITY: handle_add_identity,
    MessageType.GET_IDENTITY: handle_get_identity,
    MessageType.GET_OWN_IDENTITIES: handle_get_own_identities,
    MessageType.GET_IDENTITIES_BY_SCORE: handle_get_identities_by_score,
    MessageType.GET_TRUSTERS: handle_get_trusters,
    MessageType.GET_TRUSTEES: handle_get_trustees,
    # Trust
    MessageType.SET_TRUST: handle_set_trust,
    MessageType.REMOVE_TRUST: handle_remove_trust,
    # Contexts and properties
    MessageType.ADD_CONTEXT: handle_add_context,
    MessageType.REMOVE_CONTEXT: handle_remove_context,
    MessageType.SET_PROPERTY: handle_set_property,
    MessageType.GET_PROPERTY: handle_get_property,
    MessageType.REMOVE_PROPERTY: handle_remove_property,
}
