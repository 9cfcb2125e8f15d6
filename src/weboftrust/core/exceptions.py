# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for the Web of Trust.

Every operation reachable from the protocol surface fails with one of these
types, so the dispatcher can turn it into a typed error reply.
"""

from __future__ import annotations

from typing import Any


class WotException(Exception):  # noqa: N818
    """Base exception for all Web of Trust errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(WotException):
    """Exception for malformed or missing input.

    Raised when:
    - A mandatory protocol parameter is missing
    - A trust value is not an integer in -100..100
    - A URI, nickname, context or property name is malformed
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(WotException):
    """Exception for configuration errors."""

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(WotException):
    """Exception for references to something that does not exist."""

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class UnknownIdentityError(NotFoundError):
    """No (own) identity with the given id or URI is known."""

    def __init__(self, identifier: str):
        super().__init__("Identity", identifier)


class NotTrustedError(NotFoundError):
    """The truster has not assigned any trust to the trustee."""

    def __init__(self, truster_id: str, trustee_id: str):
        super().__init__("Trust", f"{truster_id} -> {trustee_id}")
        self.truster_id = truster_id
        self.trustee_id = trustee_id


class ConflictError(WotException):
    """Exception for duplicate creation attempts and referential conflicts."""

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class DuplicateIdentityError(ConflictError):
    def __init__(self, identity_id: str):
        super().__init__(f"Identity already exists: {identity_id}", existing_id=identity_id)


class DuplicateTrustError(ConflictError):
    def __init__(self, truster_id: str, trustee_id: str):
        super().__init__(
            f"Trust already exists: {truster_id} -> {trustee_id}",
            existing_id=f"{truster_id}:{trustee_id}",
        )


class DuplicateScoreError(ConflictError):
    def __init__(self, anchor_id: str, target_id: str):
        super().__init__(
            f"Score already exists: {anchor_id} -> {target_id}",
            existing_id=f"{anchor_id}:{target_id}",
        )


class UnreachableError(WotException):
    """The target is not in the anchor's trust tree.

    Distinct from a score of zero: there is no Score row at all.
    """

    def __init__(self, anchor_id: str, target_id: str):
        super().__init__(
            f"{target_id} is not in the trust tree of {anchor_id}",
            {"anchor_id": anchor_id, "target_id": target_id},
        )
        self.anchor_id = anchor_id
        self.target_id = target_id


class TransportError(WotException):
    """Exception for network insert/fetch failures.

    Raised when:
    - The gateway is unreachable or times out
    - The gateway answers with an error status
    - The gateway reply cannot be understood
    """

    def __init__(self, message: str, uri: str | None = None):
        details = {}
        if uri:
            details["uri"] = uri
        super().__init__(message, details)
        self.uri = uri


class PersistenceError(WotException):
    """Exception for storage commit and load failures.

    A PersistenceError raised while committing a mutation means neither the
    mutation nor the Score recompute it triggered took effect.
    """

    pass
