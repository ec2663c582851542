"""
Rollups node: the set of services that make up a deployment and the
orchestrator that runs them side by side.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from rollups_node.config import ConfigError
from rollups_node.services.service import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_POLL_INTERVAL,
    MAX_PORT,
    ReadyTimeoutError,
    Service,
    ServiceCancelledError,
    ServiceError,
    ServiceState,
    ServiceSupervisor,
    UnexpectedExitError,
)
from rollups_node.status.metrics import MetricsRegistry


logger = logging.getLogger(__name__)

DEFAULT_HEALTHCHECK_PORT = "8080"
DEFAULT_STATE_SERVER_PORT = "50051"
DEFAULT_READY_TIMEOUT = 30.0

STATE_SERVER_ADDRESS_ENV = "SS_SERVER_ADDRESS"
BINARY_PREFIX = "cartesi-rollups-"

# Services that expose their HTTP API port instead of a healthcheck port
HTTP_SERVER_SERVICES = ("dispatcher", "authority-claimer")

SERVICE_NAMES = (
    "state-server",
    "advance-runner",
    "authority-claimer",
    "dispatcher",
    "graphql-server",
    "indexer",
    "inspect-server",
)


def healthcheck_env(service_name: str) -> str:
    """
    Name of the environment variable holding a service's healthcheck port.

    Examples:
        >>> healthcheck_env("graphql-server")
        'GRAPHQL_SERVER_HEALTHCHECK_PORT'

        >>> healthcheck_env("authority-claimer")
        'AUTHORITY_CLAIMER_HTTP_SERVER_PORT'
    """
    suffix = "_HTTP_SERVER_PORT" if service_name in HTTP_SERVER_SERVICES else "_HEALTHCHECK_PORT"
    return service_name.replace("-", "_").upper() + suffix


def parse_port(value: str, variable: str, require_host: bool = False) -> str:
    """
    Normalize a port or host:port value to a canonical port string.

    Args:
        value: Raw value, either "8080" or "host:8080"
        variable: Variable name, for error messages
        require_host: Reject values without a host part

    Returns:
        Decimal port string

    Raises:
        ConfigError: If the value is not a valid port
    """
    if ":" in value:
        port = value.split(":", 1)[1]
    elif require_host:
        raise ConfigError(f"{variable}: expected host:port, got {value!r}")
    else:
        port = value

    port = port.strip()
    if not (port.isascii() and port.isdigit()) or int(port) > MAX_PORT:
        raise ConfigError(f"{variable}: invalid port in {value!r}")

    return str(int(port))


def state_server_healthcheck_port(environ: Optional[Mapping[str, str]] = None) -> str:
    """Port of the state server, taken from its host:port address."""
    if environ is None:
        environ = os.environ

    address = environ.get(STATE_SERVER_ADDRESS_ENV)
    if address is None:
        return DEFAULT_STATE_SERVER_PORT
    return parse_port(address, STATE_SERVER_ADDRESS_ENV, require_host=True)


def healthcheck_port(service_name: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Resolve the port a service's readiness is probed on.

    Args:
        service_name: Logical service name (e.g., 'dispatcher')
        environ: Environment to read (default: os.environ)

    Returns:
        Port string, DEFAULT_HEALTHCHECK_PORT when the variable is unset

    Raises:
        ConfigError: If the variable is set to something that isn't a port
    """
    if service_name == "state-server":
        return state_server_healthcheck_port(environ)

    if environ is None:
        environ = os.environ

    variable = healthcheck_env(service_name)
    value = environ.get(variable)
    if value is None:
        return DEFAULT_HEALTHCHECK_PORT
    return parse_port(value, variable)


@dataclass(frozen=True)
class ServiceRegistry:
    """Ordered, read-only set of services composing one node."""
    services: Tuple[Service, ...]

    def __iter__(self) -> Iterator[Service]:
        return iter(self.services)

    def __len__(self) -> int:
        return len(self.services)

    def names(self) -> List[str]:
        return [service.name for service in self.services]

    def get(self, name: str) -> Service:
        for service in self.services:
            if service.name == name:
                return service
        raise KeyError(name)


def build_registry(environ: Optional[Mapping[str, str]] = None) -> ServiceRegistry:
    """
    Build the services of a validator node from the environment.

    Every service gets a port: configured or default.

    Raises:
        ConfigError: If a port variable is set but malformed
    """
    return ServiceRegistry(tuple(
        Service(
            name=name,
            binary_name=BINARY_PREFIX + name,
            healthcheck_port=healthcheck_port(name, environ)
        )
        for name in SERVICE_NAMES
    ))


class Node:
    """
    Runs every service of a registry concurrently.

    The first service that fails to launch or exits on its own brings the
    whole node down by setting the shared stop event.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        self.registry = registry
        self.ready_timeout = ready_timeout
        self.supervisors: Dict[str, ServiceSupervisor] = {
            service.name: ServiceSupervisor(service, grace_period, poll_interval)
            for service in registry
        }
        self.ready: Dict[str, bool] = {service.name: False for service in registry}

        self.metrics = MetricsRegistry()
        self.service_up = self.metrics.register_gauge(
            "rollups_node_service_up",
            "Service child process is running"
        )
        self.service_ready = self.metrics.register_gauge(
            "rollups_node_service_ready",
            "Service healthcheck port accepted a connection"
        )
        self.unexpected_exits = self.metrics.register_counter(
            "rollups_node_service_unexpected_exits_total",
            "Number of times a service exited without being stopped"
        )

    async def run(self, stop: asyncio.Event) -> Dict[str, Optional[ServiceError]]:
        """
        Run all services until the stop event fires or one of them fails.

        Args:
            stop: Shared stop event; set by the caller to shut down

        Returns:
            Dict of service name to the error it failed with (None if clean)
        """
        names = list(self.supervisors)
        runs = [
            asyncio.ensure_future(self._run_service(self.supervisors[name], stop))
            for name in names
        ]
        watchers = [
            asyncio.ensure_future(self._watch_ready(self.supervisors[name], stop))
            for name in names
        ]

        try:
            results = await asyncio.gather(*runs)
        finally:
            for watcher in watchers:
                watcher.cancel()
            await asyncio.gather(*watchers, return_exceptions=True)

        return dict(zip(names, results))

    async def _run_service(self, supervisor: ServiceSupervisor, stop: asyncio.Event) -> Optional[ServiceError]:
        try:
            await supervisor.start(stop)
        except ServiceError as e:
            logger.error("%s: %s", supervisor.name, e)
            if isinstance(e, UnexpectedExitError):
                self.unexpected_exits.inc(service=supervisor.name)
            stop.set()
            return e
        return None

    async def _watch_ready(self, supervisor: ServiceSupervisor, stop: asyncio.Event) -> None:
        try:
            await supervisor.ready(stop, self.ready_timeout)
        except ReadyTimeoutError as e:
            logger.warning("%s", e)
            return
        except ServiceCancelledError:
            return

        self.ready[supervisor.name] = True
        logger.info("%s is ready on port %s", supervisor.name, supervisor.service.healthcheck_port)

    def is_healthy(self) -> bool:
        """True when every service is running."""
        return all(
            supervisor.state == ServiceState.RUNNING
            for supervisor in self.supervisors.values()
        )

    def snapshot(self) -> List[Dict[str, Any]]:
        """Status of every service, in registry order."""
        statuses = []
        for service in self.registry:
            supervisor = self.supervisors[service.name]
            running = supervisor.state == ServiceState.RUNNING
            statuses.append({
                "name": service.name,
                "binary_name": service.binary_name,
                "healthcheck_port": service.healthcheck_port,
                "state": supervisor.state.value,
                "ready": running and self.ready[service.name],
                "returncode": supervisor.returncode,
            })
        return statuses

    def render_metrics(self) -> str:
        """Refresh gauges from supervisor state and render all metrics."""
        for status in self.snapshot():
            self.service_up.set(1 if status["state"] == ServiceState.RUNNING.value else 0, service=status["name"])
            self.service_ready.set(1 if status["ready"] else 0, service=status["name"])
        return self.metrics.render()
