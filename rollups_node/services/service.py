"""
Service descriptor and supervisor.

The supervisor starts one sibling binary as a child process, reports when
its healthcheck port accepts connections, and stops it when the node's stop
event fires: SIGTERM first, SIGKILL once the grace period runs out.
"""
import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)

# Seconds a child gets to exit after SIGTERM before it is killed.
DEFAULT_GRACE_PERIOD = 5.0

# Seconds between two readiness probes.
DEFAULT_POLL_INTERVAL = 0.1

MAX_PORT = 65535


class ServiceError(Exception):
    """Base class for service supervision errors."""
    pass


class LaunchError(ServiceError):
    """Raised when the service binary cannot be found or spawned."""
    pass


class UnexpectedExitError(ServiceError):
    """Raised when a running service exits without being asked to stop."""

    def __init__(self, service_name: str, returncode: int):
        self.service_name = service_name
        self.returncode = returncode
        super().__init__(f"{service_name} exited unexpectedly with code {returncode}")


class ReadyTimeoutError(ServiceError, TimeoutError):
    """Raised when a service is not ready within the requested timeout."""
    pass


class ServiceCancelledError(ServiceError):
    """Raised by ready() when the stop event fires before the service is ready."""
    pass


class ServiceState(str, Enum):
    """Lifecycle state of a supervised service."""
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Service:
    """One supervisable node component."""
    name: str
    binary_name: str
    healthcheck_port: str

    def __post_init__(self):
        port = str(self.healthcheck_port)
        if not (port.isascii() and port.isdigit()) or int(port) > MAX_PORT:
            raise ValueError(f"invalid healthcheck port for {self.name}: {self.healthcheck_port!r}")
        object.__setattr__(self, "healthcheck_port", port)


class ServiceSupervisor:
    """
    Owns the child process of a single service.

    start() and ready() are independent coroutines: ready() only observes
    the healthcheck port and may run while start() is blocked. Both take the
    node's stop event as their cancellation signal.
    """

    def __init__(
        self,
        service: Service,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        Initialize supervisor.

        Args:
            service: Descriptor of the service to supervise
            grace_period: Seconds between SIGTERM and SIGKILL on shutdown
            poll_interval: Seconds between readiness probes
        """
        self.service = service
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.state = ServiceState.NOT_STARTED
        self.returncode: Optional[int] = None
        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def name(self) -> str:
        return self.service.name

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self, stop: asyncio.Event) -> None:
        """
        Launch the service and block until it exits or the node stops.

        Args:
            stop: Event set when the node is shutting down

        Returns:
            None once the child has been stopped in response to the stop event

        Raises:
            LaunchError: If the binary is not on PATH or cannot be spawned
            UnexpectedExitError: If the child exits while the stop event is clear
            ServiceError: If this supervisor already owns a running child
        """
        if self._process is not None:
            raise ServiceError(f"{self.name} is already running")

        self.state = ServiceState.STARTING
        self.returncode = None

        binary = shutil.which(self.service.binary_name)
        if binary is None:
            self.state = ServiceState.NOT_STARTED
            raise LaunchError(f"{self.service.binary_name} not found in PATH")

        try:
            # stdio and environment are inherited from the node
            process = await asyncio.create_subprocess_exec(binary)
        except OSError as e:
            self.state = ServiceState.NOT_STARTED
            raise LaunchError(f"failed to launch {self.service.binary_name}: {e}") from e

        self._process = process
        self.state = ServiceState.RUNNING
        logger.info("started %s (pid %d)", self.name, process.pid)

        try:
            await self._supervise(process, stop)
        finally:
            self._process = None

    async def _supervise(self, process: asyncio.subprocess.Process, stop: asyncio.Event) -> None:
        exited = asyncio.ensure_future(process.wait())
        stopped = asyncio.ensure_future(stop.wait())

        try:
            await asyncio.wait({exited, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            stopped.cancel()
            await self._terminate(process, exited)
            raise

        stopped.cancel()

        if stop.is_set():
            await self._terminate(process, exited)
            return

        self.returncode = exited.result()
        self.state = ServiceState.EXITED
        raise UnexpectedExitError(self.name, self.returncode)

    async def _terminate(self, process: asyncio.subprocess.Process, exited: asyncio.Future) -> None:
        self.state = ServiceState.STOPPING

        if not exited.done():
            logger.info("stopping %s (pid %d)", self.name, process.pid)
            try:
                process.terminate()
            except ProcessLookupError:
                pass

            try:
                await asyncio.wait_for(asyncio.shield(exited), timeout=self.grace_period)
            except asyncio.TimeoutError:
                logger.warning(
                    "%s did not exit %.1fs after SIGTERM, killing it",
                    self.name, self.grace_period
                )
                self._kill(process)
                await asyncio.shield(exited)
            except asyncio.CancelledError:
                # cancelled during the grace period: the child must not outlive start()
                logger.warning("%s cancelled while stopping, killing it", self.name)
                self._kill(process)
                await asyncio.shield(exited)
                self._stopped(exited)
                raise

        self._stopped(exited)

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass

    def _stopped(self, exited: asyncio.Future) -> None:
        self.returncode = exited.result()
        self.state = ServiceState.STOPPED
        logger.info("%s stopped (code %s)", self.name, self.returncode)

    async def ready(self, stop: asyncio.Event, timeout: float) -> None:
        """
        Wait until the healthcheck port accepts a TCP connection.

        Probes localhost every poll_interval seconds. Never touches the
        child process.

        Args:
            stop: Event set when the node is shutting down
            timeout: Seconds to wait before giving up

        Raises:
            ReadyTimeoutError: If no probe succeeded within timeout
            ServiceCancelledError: If the stop event fired first
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if stop.is_set():
                raise ServiceCancelledError(f"{self.name} readiness check cancelled")

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ReadyTimeoutError(
                    f"{self.name} not ready on port {self.service.healthcheck_port} "
                    f"after {timeout:.3f}s"
                )

            attempt_started = loop.time()
            if await self._probe(min(self.poll_interval, remaining)):
                logger.debug("%s is ready", self.name)
                return

            elapsed = loop.time() - attempt_started
            pause = min(self.poll_interval - elapsed, deadline - loop.time())
            if pause > 0:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=pause)
                except asyncio.TimeoutError:
                    pass

    async def _probe(self, timeout: float) -> bool:
        """Attempt one TCP connection to the healthcheck port."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection("localhost", int(self.service.healthcheck_port)),
                timeout=timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
