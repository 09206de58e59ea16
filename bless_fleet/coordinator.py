"""
Fleet Coordinator - launches and stops one supervisor per node.

For every configured account the coordinator builds a gateway client (with
the account's proxy, if any), discovers the proxy's public address, lists the
account's nodes and spawns a ``NodeSupervisor`` task for each one. ``run()``
returns as soon as every account has been processed; the supervisors keep
running on their own.

Account-level failures (bad token, unreachable gateway, malformed node list)
are never retried: they are logged and raised to the caller.

``shutdown()`` closes the session of every node still claimed in the
registry, waits for all of those calls to resolve, then cancels the
supervisor tasks and closes the HTTP sessions.

Example usage:
    coordinator = FleetCoordinator(accounts, FleetConfig.from_env())
    await coordinator.run()
    await stop_event.wait()
    report = await coordinator.shutdown()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from aiohttp import ClientTimeout

from bless_fleet.config import FleetConfig
from bless_fleet.errors import BlessFleetError
from bless_fleet.metrics import SESSION_CLOSES
from bless_fleet.models import AccountConfig, Node
from bless_fleet.network import BlessClient, get_client_session
from bless_fleet.registry import NodeRegistry
from bless_fleet.supervisor import NodeSupervisor

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AccountConfig, FleetConfig], BlessClient]


def default_client_factory(account: AccountConfig, config: FleetConfig) -> BlessClient:
    """Build a gateway client bound to an account's token and proxy."""
    session = get_client_session(
        timeout=ClientTimeout(total=config.request_timeout),
        proxy=account.proxy,
    )
    return BlessClient(
        session,
        account.token,
        base_url=config.api_base_url,
        ip_lookup_url=config.ip_lookup_url,
        proxy=account.proxy,
    )


@dataclass(slots=True)
class ShutdownReport:
    """Outcome of the session-close sweep at shutdown."""

    closed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.closed) + len(self.failed)


class FleetCoordinator:
    """Owns the registry and every supervisor task of the fleet."""

    def __init__(
        self,
        accounts: Iterable[AccountConfig],
        config: FleetConfig | None = None,
        registry: NodeRegistry | None = None,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize FleetCoordinator.

        Args:
            accounts: Account entries, read once at startup.
            config: Timing and endpoint tunables.
            registry: Registry shared by all supervisors (a new one by default).
            client_factory: Builds a client for an account; tests inject fakes.
            sleep: Sleep function handed to every supervisor.
        """
        self._accounts: tuple[AccountConfig, ...] = tuple(accounts)
        self._config = config or FleetConfig()
        self._registry = registry if registry is not None else NodeRegistry()
        self._client_factory = client_factory or default_client_factory
        self._sleep = sleep

        self._clients: list[BlessClient] = []
        self._supervisors: list[NodeSupervisor] = []
        self._tasks: set[asyncio.Task] = set()
        self._shutdown_started = False
        self._shutdown_report: ShutdownReport | None = None

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    @property
    def supervisors(self) -> tuple[NodeSupervisor, ...]:
        return tuple(self._supervisors)

    def active_nodes(self) -> list[str]:
        return self._registry.identities()

    # =========================================================================
    # Startup
    # =========================================================================

    async def run(self) -> int:
        """
        Discover every account's nodes and spawn their supervisors.

        Returns:
            Number of supervisors spawned.

        Raises:
            BlessFleetError: An account could not be set up (bad token,
                unreachable gateway, address lookup failure).
        """
        spawned = 0
        for index, account in enumerate(self._accounts):
            try:
                client = self._client_factory(account, self._config)
                self._clients.append(client)
                if account.proxy:
                    await client.what_my_addr()
                nodes = await client.list_nodes()
            except BlessFleetError as e:
                logger.error(f"Error fetching nodes for account #{index}: {e}")
                raise

            proxy_mode = f"ON/{client.address}" if client.address else "OFF"
            for node in nodes:
                logger.info(f"init {node.pub_key}, proxy mode [{proxy_mode}]")
                self.spawn(node, client)
                spawned += 1

        logger.info(f"Spawned {spawned} node supervisors across {len(self._accounts)} accounts")
        return spawned

    def spawn(self, node: Node, client: BlessClient) -> asyncio.Task:
        """Start a supervisor task for one node without waiting on it."""
        supervisor = NodeSupervisor(
            node,
            client,
            self._registry,
            ping_interval=self._config.ping_interval,
            restart_delay=self._config.restart_delay,
            max_ping_errors=self._config.max_ping_errors,
            sleep=self._sleep,
        )
        self._supervisors.append(supervisor)
        task = asyncio.create_task(supervisor.run(), name=f"supervisor-{node.pub_key}")
        self._tasks.add(task)
        task.add_done_callback(self._on_supervisor_done)
        return task

    def _on_supervisor_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Supervisor {task.get_name()} crashed: {error!r}")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> ShutdownReport:
        """Close every active session, then stop all supervisors.

        Safe to call more than once; later calls return the first report.
        """
        if self._shutdown_started:
            return self._shutdown_report or ShutdownReport()
        self._shutdown_started = True

        logger.info("Shutting down... Cleaning up sessions.")
        for supervisor in self._supervisors:
            supervisor.request_stop()
        entries = self._registry.snapshot()
        results = await asyncio.gather(
            *(self._close_session(pub_key, client) for pub_key, client in entries)
        )

        report = ShutdownReport()
        for (pub_key, _), error in zip(entries, results):
            if error is None:
                report.closed.append(pub_key)
            else:
                report.failed[pub_key] = error

        await self._stop_supervisors()
        for client in self._clients:
            await client.close()

        self._shutdown_report = report
        return report

    async def _close_session(self, pub_key: str, client: BlessClient) -> str | None:
        try:
            await asyncio.wait_for(client.stop_session(pub_key), timeout=self._config.close_timeout)
        except asyncio.TimeoutError:
            SESSION_CLOSES.labels(outcome="error").inc()
            logger.error(f"Failed to stop session for node {pub_key}: timed out")
            return "timed out"
        except BlessFleetError as e:
            SESSION_CLOSES.labels(outcome="error").inc()
            logger.error(f"Failed to stop session for node {pub_key}: {e}")
            return str(e)
        except Exception as e:
            SESSION_CLOSES.labels(outcome="error").inc()
            logger.exception(f"Unexpected error stopping session for node {pub_key}")
            return f"{type(e).__name__}: {e}"
        SESSION_CLOSES.labels(outcome="ok").inc()
        logger.info(f"Session stopped for node {pub_key}")
        return None

    async def _stop_supervisors(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_status(self) -> dict:
        """Snapshot of the fleet for the status API."""
        return {
            "accounts": len(self._accounts),
            "active_nodes": len(self._registry),
            "supervisors": [s.get_status() for s in self._supervisors],
            "shutting_down": self._shutdown_started,
        }
