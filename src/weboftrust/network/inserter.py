# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Periodic republication of own identities.

One background thread wakes up after a startup delay and then once per
period. Each cycle inserts every own identity whose local state changed
since its last successful insert:

    Idle --(mutation)--> InsertPending --(cycle)--> Inserting --(ok)--> Idle
                                ^                       |
                                +------(failure)--------+

A failed insert leaves the identity pending, so it is retried on the next
cycle. A mutation that lands while an insert is in flight also leaves it
pending, because ``last_insert`` is set to the time the insert started.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..core.clock import Clock, SystemClock
from ..core.config import get_config
from ..core.exceptions import TransportError
from ..graph.models import Identity, OwnIdentity, Trust, with_edition
from ..graph.store import GraphStore
from .client import NetworkClient
from .codec import encode_identity

logger = logging.getLogger(__name__)

Encoder = Callable[[OwnIdentity, list[tuple[Trust, Identity]]], bytes]


class PublicationScheduler:
    """Background inserter for own identities.

    ``run_cycle()`` and ``run(max_cycles=...)`` are usable without the
    thread; with a ``ManualClock`` they run without sleeping.
    """

    def __init__(
        self,
        store: GraphStore,
        network: NetworkClient,
        clock: Clock | None = None,
        period: float | None = None,
        startup_delay: float | None = None,
        encoder: Encoder = encode_identity,
    ):
        config = get_config()
        self.store = store
        self.network = network
        self.clock = clock or store.clock or SystemClock()
        self.period = period if period is not None else config.insert_period_seconds
        self.startup_delay = startup_delay if startup_delay is not None else config.insert_startup_delay_seconds
        self.encoder = encoder

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()
        self.stats = {
            "cycles": 0,
            "inserts": 0,
            "failures": 0,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="wot-identity-inserter")
        self._thread.start()
        logger.info(f"Identity inserter started (period {self.period}s, startup delay {self.startup_delay}s)")

    def stop(self, timeout: float | None = None) -> None:
        """Ask the loop to stop and wait for it. An in-flight insert completes first."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Identity inserter did not stop within the timeout")
            else:
                self._thread = None
        logger.info("Identity inserter stopped")

    def run(self, max_cycles: int | None = None) -> int:
        """Scheduler loop; returns the number of cycles run."""
        cycles = 0
        if self.clock.wait(self._stop, self.startup_delay):
            return cycles

        while not self._stop.is_set():
            self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if self.clock.wait(self._stop, self.period):
                break
        return cycles

    # -------------------------------------------------------------------------
    # Inserting
    # -------------------------------------------------------------------------

    def run_cycle(self) -> int:
        """Insert every own identity that needs it; return the number inserted.

        A stop request does not cut a cycle short, ``run`` checks it between
        cycles.
        """
        self.stats["cycles"] += 1
        inserted = 0
        for own in self.store.identities_needing_insert():
            try:
                if self.insert(own.id):
                    inserted += 1
            except TransportError as e:
                self.stats["failures"] += 1
                logger.warning(f"Insert of identity {own.id} failed, retrying next cycle: {e.message}")
            except Exception:
                self.stats["failures"] += 1
                logger.exception(f"Unexpected error inserting identity {own.id}")
        return inserted

    def insert(self, identity_id: str) -> bool:
        """Publish one own identity now.

        Returns False if an insert of the same identity is already running.

        Raises:
            TransportError: The network did not accept the document
        """
        with self._in_flight_lock:
            if identity_id in self._in_flight:
                logger.debug(f"Insert of identity {identity_id} already in flight")
                return False
            self._in_flight.add(identity_id)

        try:
            export = self.store.export_identity(identity_id)
            own = export.identity
            edition = own.next_edition
            data = self.encoder(own, export.trusts)
            logger.debug(f"Inserting identity {own.id} edition {edition} ({len(data)} bytes)")

            inserted_edition = self.network.publish(with_edition(own.insert_uri, edition), data)
            self.store.mark_inserted(own.id, inserted_edition, export.exported_at)
            self.stats["inserts"] += 1
            logger.info(f"Inserted identity {own.id} edition {inserted_edition}")
            return True
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(identity_id)
