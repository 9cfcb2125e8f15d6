# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Web of Trust - decentralized reputation graph for pseudonymous identities.

Computes per-anchor rank, capacity and score over a trust graph and
periodically republishes own identities to a content-addressed network.
"""

__version__ = "0.1.0"

from .web_of_trust import WebOfTrust  # noqa: E402

__all__ = ["WebOfTrust", "__version__"]
