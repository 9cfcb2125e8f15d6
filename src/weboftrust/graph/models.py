# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Data models for the trust graph.

Identity, OwnIdentity, Trust and Score are frozen dataclasses. The store
never mutates a stored object; it replaces it with ``dataclasses.replace``,
which is what makes its copy-on-write transactions cheap to roll back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.exceptions import ValidationError

# =============================================================================
# CONSTANTS
# =============================================================================

MIN_TRUST = -100
MAX_TRUST = 100

MAX_NICKNAME_LENGTH = 50
MAX_CONTEXT_LENGTH = 32
MAX_PROPERTY_NAME_LENGTH = 256
MAX_PROPERTY_VALUE_LENGTH = 10_000
MAX_COMMENT_LENGTH = 256
MAX_TRUST_LIST_SIZE = 512  # given trust values one own identity can publish

# KEYTYPE@routing,crypto,extra[/docname[/edition]]
_URI_RE = re.compile(r"^(?P<type>USK|SSK)@(?P<routing>[^,/@\s]+),(?P<crypto>[^,/\s]+),(?P<extra>[^,/\s]+)(?:/(?P<path>\S*))?$")
_CONTEXT_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_EDITION_SUFFIX_RE = re.compile(r"/(-?\d+)$")


# =============================================================================
# URI HELPERS
# =============================================================================


def _match_uri(uri: str, field_name: str) -> re.Match:
    match = _URI_RE.match(uri.strip()) if isinstance(uri, str) else None
    if match is None:
        raise ValidationError(f"Malformed {field_name}: {uri!r}", field=field_name, value=uri)
    return match


def identity_id_from_uri(request_uri: str) -> str:
    """Derive the stable identity id (the routing key) from a request URI."""
    return _match_uri(request_uri, "RequestURI").group("routing")


def crypto_key_of(uri: str, field_name: str = "URI") -> str:
    return _match_uri(uri, field_name).group("crypto")


def edition_of(uri: str) -> int:
    """Edition encoded at the end of a USK path, 0 if there is none."""
    match = _EDITION_SUFFIX_RE.search(_match_uri(uri, "URI").group(0))
    return max(int(match.group(1)), 0) if match else 0


def with_edition(uri: str, edition: int) -> str:
    """Return ``uri`` with its trailing edition replaced by ``edition``."""
    uri = _match_uri(uri, "URI").group(0)
    if _EDITION_SUFFIX_RE.search(uri):
        return _EDITION_SUFFIX_RE.sub(f"/{edition}", uri)
    return f"{uri.rstrip('/')}/{edition}"


# =============================================================================
# VALIDATION
# =============================================================================


def validate_nickname(nickname: str | None) -> str | None:
    if nickname is None:
        return None
    if not isinstance(nickname, str):
        raise ValidationError("Nickname must be a string", field="NickName", value=nickname)
    nickname = nickname.strip()
    if not nickname or len(nickname) > MAX_NICKNAME_LENGTH:
        raise ValidationError(
            f"Nickname must be 1..{MAX_NICKNAME_LENGTH} characters", field="NickName", value=nickname
        )
    if any(not ch.isprintable() for ch in nickname):
        raise ValidationError("Nickname contains unprintable characters", field="NickName", value=nickname)
    return nickname


def validate_context(context: str) -> str:
    if not isinstance(context, str) or len(context) > MAX_CONTEXT_LENGTH or not _CONTEXT_RE.match(context):
        raise ValidationError(
            f"Context must be 1..{MAX_CONTEXT_LENGTH} letters, digits, '_' or '-'",
            field="Context",
            value=context,
        )
    return context


def validate_property(name: str, value: str | None = None) -> None:
    if not isinstance(name, str) or not name or len(name) > MAX_PROPERTY_NAME_LENGTH:
        raise ValidationError(
            f"Property name must be 1..{MAX_PROPERTY_NAME_LENGTH} characters", field="Property", value=name
        )
    if value is not None and (not isinstance(value, str) or len(value) > MAX_PROPERTY_VALUE_LENGTH):
        raise ValidationError(
            f"Property value must be a string of at most {MAX_PROPERTY_VALUE_LENGTH} characters",
            field="Value",
        )


def validate_trust_value(value: Any) -> int:
    """Parse and range-check a trust value (ints or their string form)."""
    if isinstance(value, bool):
        raise ValidationError("Trust value must be an integer", field="Value", value=value)
    try:
        parsed = int(value.strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ValidationError("Trust value must be an integer", field="Value", value=value) from None
    if isinstance(value, float) and value != parsed:
        raise ValidationError("Trust value must be an integer", field="Value", value=value)
    if not MIN_TRUST <= parsed <= MAX_TRUST:
        raise ValidationError(
            f"Trust value must be between {MIN_TRUST} and {MAX_TRUST}", field="Value", value=value
        )
    return parsed


def validate_comment(comment: str | None) -> str:
    comment = "" if comment is None else comment
    if not isinstance(comment, str):
        raise ValidationError("Comment must be a string", field="Comment", value=comment)
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters", field="Comment"
        )
    return comment


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class Identity:
    """A network-visible pseudonymous actor."""

    id: str
    request_uri: str
    nickname: str | None = None
    contexts: frozenset[str] = frozenset()
    properties: dict[str, str] = field(default_factory=dict)
    edition: int = 0
    added_at: datetime
    last_changed: datetime
    last_fetched: datetime | None = None

    @property
    def is_own(self) -> bool:
        return False

    def has_context(self, context: str) -> bool:
        return context in self.contexts

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request_uri": self.request_uri,
            "nickname": self.nickname,
            "contexts": sorted(self.contexts),
            "properties": dict(self.properties),
            "edition": self.edition,
            "added_at": self.added_at.isoformat(),
            "last_changed": self.last_changed.isoformat(),
            "last_fetched": self.last_fetched.isoformat() if self.last_fetched else None,
            "own": self.is_own,
        }


@dataclass(frozen=True, kw_only=True)
class OwnIdentity(Identity):
    """An identity whose insert key is held locally; a trust anchor."""

    insert_uri: str
    publish_trust_list: bool = True
    last_insert: datetime | None = None

    @property
    def is_own(self) -> bool:
        return True

    @property
    def needs_insert(self) -> bool:
        """True if the local state changed after the last successful insert."""
        return self.last_insert is None or self.last_changed > self.last_insert

    @property
    def next_edition(self) -> int:
        """Edition the next insert should claim."""
        return self.edition if self.last_insert is None else self.edition + 1

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "publish_trust_list": self.publish_trust_list,
                "last_insert": self.last_insert.isoformat() if self.last_insert else None,
                "needs_insert": self.needs_insert,
            }
        )
        return data


@dataclass(frozen=True)
class Trust:
    """A directed, weighted edge truster -> trustee."""

    truster_id: str
    trustee_id: str
    value: int
    comment: str = ""
    truster_edition: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.truster_id, self.trustee_id)


@dataclass(frozen=True)
class Score:
    """Cached rank/capacity/score of ``target_id`` in the trust tree of ``anchor_id``."""

    anchor_id: str
    target_id: str
    rank: int
    capacity: int
    score: int

    @property
    def key(self) -> tuple[str, str]:
        return (self.anchor_id, self.target_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "anchor_id": self.anchor_id,
            "target_id": self.target_id,
            "rank": self.rank,
            "capacity": self.capacity,
            "score": self.score,
        }
