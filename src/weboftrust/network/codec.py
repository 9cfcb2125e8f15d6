# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""JSON codec for published identity state.

An inserted document carries what other nodes need to import an identity:
nickname, contexts, properties and, if the identity publishes it, its trust
list. Trustees are referenced by request URI so a fetching node can add
identities it has not seen yet.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import ValidationError
from ..graph.models import MAX_TRUST_LIST_SIZE, Identity, OwnIdentity, Trust

FORMAT_VERSION = 1
MAX_PAYLOAD_SIZE = 64 * 1024  # bytes


@dataclass
class IdentityDocument:
    """Decoded identity state, not yet validated against the graph."""

    edition: int
    nickname: str | None = None
    publishes_trust_list: bool = False
    contexts: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    # (trustee request URI, value, comment)
    trusts: list[tuple[str, Any, str]] = field(default_factory=list)


def encode_identity(own: OwnIdentity, trusts: list[tuple[Trust, Identity]], edition: int | None = None) -> bytes:
    """Serialize an own identity for inserting.

    Args:
        own: The identity to publish
        trusts: Its given trust values paired with the trustee identities
        edition: Edition to claim, defaults to ``own.next_edition``
    """
    document: dict[str, Any] = {
        "Version": FORMAT_VERSION,
        "Edition": own.next_edition if edition is None else edition,
        "Nickname": own.nickname,
        "PublishesTrustList": own.publish_trust_list,
        "Contexts": sorted(own.contexts),
        "Properties": dict(sorted(own.properties.items())),
    }
    if own.publish_trust_list:
        if len(trusts) > MAX_TRUST_LIST_SIZE:
            raise ValidationError(
                f"Trust list of {own.id} has {len(trusts)} entries, at most {MAX_TRUST_LIST_SIZE} can be published",
                field="TrustList",
            )
        document["TrustList"] = [
            {"Identity": trustee.request_uri, "Value": trust.value, "Comment": trust.comment}
            for trust, trustee in trusts
        ]

    data = json.dumps(document, sort_keys=True).encode("utf-8")
    if len(data) > MAX_PAYLOAD_SIZE:
        raise ValidationError(f"Identity document too large ({len(data)} bytes)", field="Payload")
    return data


def decode_identity(data: bytes) -> IdentityDocument:
    """Parse a fetched identity document.

    Raises:
        ValidationError: The payload is oversized, not JSON, or has the wrong shape
    """
    if len(data) > MAX_PAYLOAD_SIZE:
        raise ValidationError(f"Identity document too large ({len(data)} bytes)", field="Payload")
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Malformed identity document: {e}", field="Payload") from e
    if not isinstance(document, dict):
        raise ValidationError("Identity document must be an object", field="Payload")

    version = document.get("Version")
    if version != FORMAT_VERSION:
        raise ValidationError(f"Unsupported identity document version: {version}", field="Version", value=version)

    edition = document.get("Edition")
    if not isinstance(edition, int) or isinstance(edition, bool) or edition < 0:
        raise ValidationError("Edition must be a non-negative integer", field="Edition", value=edition)

    contexts = document.get("Contexts", [])
    properties = document.get("Properties", {})
    if not isinstance(contexts, list):
        raise ValidationError("Contexts must be a list", field="Contexts")
    if not isinstance(properties, dict):
        raise ValidationError("Properties must be an object", field="Properties")

    publishes_trust_list = bool(document.get("PublishesTrustList", False))
    trusts = []
    if publishes_trust_list:
        trust_list = document.get("TrustList", [])
        if not isinstance(trust_list, list) or len(trust_list) > MAX_TRUST_LIST_SIZE:
            raise ValidationError("TrustList must be a list of trust values", field="TrustList")
        for entry in trust_list:
            if not isinstance(entry, dict) or "Identity" not in entry or "Value" not in entry:
                raise ValidationError("Trust list entries need Identity and Value", field="TrustList")
            comment = entry.get("Comment", "")
            if not isinstance(entry["Identity"], str) or not isinstance(comment, str):
                raise ValidationError("Trust list Identity and Comment must be strings", field="TrustList")
            trusts.append((entry["Identity"], entry["Value"], comment))

    return IdentityDocument(
        edition=edition,
        nickname=document.get("Nickname"),
        publishes_trust_list=publishes_trust_list,
        contexts=contexts,
        properties=properties,
        trusts=trusts,
    )
