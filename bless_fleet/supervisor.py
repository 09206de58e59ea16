"""Node supervisor - keeps one node registered, in session and pinging.

One supervisor runs per discovered node for the life of the process:

    CLAIMING -> REGISTERING -> SESSION_STARTING -> HEARTBEATING
        ^                                              |
        +------------- RESTARTING (restart_delay) <----+

- CLAIMING loses to an existing claim: the supervisor stops quietly with no
  network calls (DUPLICATE).
- Any gateway error while registering or starting the session, and
  ``max_ping_errors`` consecutive ping failures while heartbeating, lead to
  RESTARTING. The registry claim is released first, then the supervisor
  sleeps ``restart_delay`` and claims again. There is no retry limit.
  Unexpected exceptions from a cycle are logged and restart it the same way.
- Fleet shutdown is the only way out. ``request_stop()`` keeps a supervisor
  from claiming again after its restart delay, and cancellation stops a
  running cycle: the heartbeat task is cancelled, the claim released and the
  state becomes SHUT_DOWN.

The heartbeat loop runs as its own task. The supervisor holds the handle and
waits on it, so the loop can never outlive the claim that represents it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from bless_fleet.errors import BlessFleetError
from bless_fleet.metrics import (
    DUPLICATE_CLAIMS,
    HEARTBEATS,
    NODE_REGISTRATIONS,
    NODE_RESTARTS,
    SESSION_STARTS,
)
from bless_fleet.models import Node
from bless_fleet.network import BlessClient
from bless_fleet.registry import NodeRegistry

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SupervisorState(str, Enum):
    """Lifecycle states of a node supervisor"""
    CLAIMING = "claiming"
    REGISTERING = "registering"
    SESSION_STARTING = "session_starting"
    HEARTBEATING = "heartbeating"
    RESTARTING = "restarting"
    DUPLICATE = "duplicate"
    SHUT_DOWN = "shut_down"


@dataclass
class FailureCounter:
    """Consecutive-failure counter for one node's heartbeats."""
    threshold: int
    count: int = 0

    def record_success(self) -> None:
        self.count = 0

    def record_failure(self) -> bool:
        """Count a failure; returns True once the threshold is reached."""
        self.count += 1
        return self.count >= self.threshold


class NodeSupervisor:
    """Drives the lifecycle of a single node against the gateway."""

    def __init__(
        self,
        node: Node,
        client: BlessClient,
        registry: NodeRegistry,
        ping_interval: float = 120.0,
        restart_delay: float = 240.0,
        max_ping_errors: int = 3,
        sleep: Sleep = asyncio.sleep,
    ):
        self.node = node
        self.client = client
        self.registry = registry
        self.ping_interval = ping_interval
        self.restart_delay = restart_delay
        self.max_ping_errors = max_ping_errors
        self._sleep = sleep

        self.state = SupervisorState.CLAIMING
        self.restarts = 0
        self.last_error: Optional[str] = None
        self._claimed = False
        self._stopping = False
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def pub_key(self) -> str:
        return self.node.pub_key

    def request_stop(self) -> None:
        """Stop before the next claim; a running cycle is left to cancellation."""
        self._stopping = True

    async def run(self) -> None:
        """Run the node lifecycle until shutdown or a lost claim."""
        try:
            while True:
                if self._stopping:
                    logger.info(f"Fleet is shutting down, not restarting nodeId: {self.pub_key}")
                    self.state = SupervisorState.SHUT_DOWN
                    return

                self.state = SupervisorState.CLAIMING
                if not self.registry.try_claim(self.pub_key, self.client):
                    logger.debug(f"Node {self.pub_key} is already being processed.")
                    DUPLICATE_CLAIMS.inc()
                    self.state = SupervisorState.DUPLICATE
                    return
                self._claimed = True

                try:
                    if await self._establish():
                        self.state = SupervisorState.HEARTBEATING
                        self._heartbeat_task = asyncio.create_task(
                            self.heartbeat_loop(),
                            name=f"heartbeat-{self.pub_key}",
                        )
                        await self._heartbeat_task
                except Exception as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.exception(f"Unexpected error for nodeId: {self.pub_key}")
                self._heartbeat_task = None

                # Release strictly before the retried claim, or the retry
                # would block on its own stale entry.
                self.state = SupervisorState.RESTARTING
                self._release()
                self.restarts += 1
                NODE_RESTARTS.inc()
                logger.warning(
                    f"Restarting process for nodeId: {self.pub_key} in {self.restart_delay:.0f} seconds"
                )
                await self._sleep(self.restart_delay)
        except asyncio.CancelledError:
            await self._cancel_heartbeat()
            self._release()
            self.state = SupervisorState.SHUT_DOWN
            raise

    def _release(self) -> None:
        # Only drop a claim we hold; another supervisor may own the identity.
        if self._claimed:
            self.registry.release(self.pub_key)
            self._claimed = False

    async def _establish(self) -> bool:
        """Register the node and open its session; False means restart."""
        self.state = SupervisorState.REGISTERING
        try:
            await self.client.register_node(
                self.pub_key, self.node.hardware_id, self.client.address
            )
        except BlessFleetError as e:
            NODE_REGISTRATIONS.labels(outcome="error").inc()
            self.last_error = str(e)
            logger.error(f"Error occurred for nodeId: {self.pub_key} during registration: {e}")
            return False
        NODE_REGISTRATIONS.labels(outcome="ok").inc()

        self.state = SupervisorState.SESSION_STARTING
        try:
            await self.client.start_session(self.pub_key)
        except BlessFleetError as e:
            SESSION_STARTS.labels(outcome="error").inc()
            self.last_error = str(e)
            logger.error(f"Error occurred for nodeId: {self.pub_key} during session start: {e}")
            return False
        SESSION_STARTS.labels(outcome="ok").inc()
        return True

    async def heartbeat_loop(self) -> int:
        """Ping every ``ping_interval`` until ``max_ping_errors`` failures in a row.

        Returns the number of pings sent.
        """
        failures = FailureCounter(threshold=self.max_ping_errors)
        pings = 0
        while True:
            pings += 1
            try:
                data = await self.client.ping(self.pub_key)
            except BlessFleetError as e:
                HEARTBEATS.labels(outcome="error").inc()
                self.last_error = str(e)
                logger.error(f"Error during ping for nodeId: {self.pub_key}: {e}")
                if failures.record_failure():
                    logger.warning(
                        f"Ping failed {failures.count} times consecutively for nodeId: "
                        f"{self.pub_key}. Restarting process..."
                    )
                    return pings
            else:
                failures.record_success()
                HEARTBEATS.labels(outcome="ok" if data.connected else "not_ok").inc()
                logger.info(
                    f"Ping response status: {data.status or 'UNKNOWN'}, NodeID: {self.pub_key}, "
                    f"IP: {self.client.address or 'None'}"
                )
            await self._sleep(self.ping_interval)

    async def _cancel_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def get_status(self) -> dict:
        return {
            "pub_key": self.pub_key,
            "state": self.state.value,
            "restarts": self.restarts,
            "last_error": self.last_error,
            "address": self.client.address,
        }
