"""
Service supervision for rollups node components.

A Service describes one sibling binary; a ServiceSupervisor owns the
lifecycle of the child process launched for it.
"""
from rollups_node.services.service import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_POLL_INTERVAL,
    LaunchError,
    ReadyTimeoutError,
    Service,
    ServiceCancelledError,
    ServiceError,
    ServiceState,
    ServiceSupervisor,
    UnexpectedExitError,
)

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_POLL_INTERVAL",
    "LaunchError",
    "ReadyTimeoutError",
    "Service",
    "ServiceCancelledError",
    "ServiceError",
    "ServiceState",
    "ServiceSupervisor",
    "UnexpectedExitError",
]
