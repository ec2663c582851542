"""
Unit tests for the service registry and the node orchestrator.
"""
import asyncio

import pytest

from rollups_node.config import ConfigError
from rollups_node.node import Node, ServiceRegistry, build_registry
from rollups_node.services.service import (
    LaunchError,
    Service,
    ServiceState,
    UnexpectedExitError,
)


class TestBuildRegistry:
    """Test registry construction."""

    def test_contains_all_services_in_order(self):
        """Registry lists the seven node services in declaration order."""
        registry = build_registry({})

        assert registry.names() == [
            "state-server",
            "advance-runner",
            "authority-claimer",
            "dispatcher",
            "graphql-server",
            "indexer",
            "inspect-server",
        ]
        assert len(registry) == 7

    def test_binary_names(self):
        """Each service maps to cartesi-rollups-<name>."""
        registry = build_registry({})

        for service in registry:
            assert service.binary_name == f"cartesi-rollups-{service.name}"

    def test_default_ports(self):
        """Unconfigured services get default ports."""
        registry = build_registry({})

        assert registry.get("dispatcher").healthcheck_port == "8080"
        assert registry.get("indexer").healthcheck_port == "8080"
        assert registry.get("state-server").healthcheck_port == "50051"

    def test_configured_ports(self):
        """Ports come from each service's variable."""
        registry = build_registry({
            "DISPATCHER_HTTP_SERVER_PORT": "9999",
            "SS_SERVER_ADDRESS": "0.0.0.0:50099",
            "INSPECT_SERVER_HEALTHCHECK_PORT": "5005",
        })

        assert registry.get("dispatcher").healthcheck_port == "9999"
        assert registry.get("state-server").healthcheck_port == "50099"
        assert registry.get("inspect-server").healthcheck_port == "5005"

    def test_unknown_service(self):
        """get() raises KeyError for names not in the registry."""
        with pytest.raises(KeyError):
            build_registry({}).get("sequencer")

    def test_registry_is_immutable(self):
        """The registry cannot be modified after construction."""
        registry = build_registry({})

        assert isinstance(registry.services, tuple)
        with pytest.raises(AttributeError):
            registry.services = ()

    def test_malformed_port_fails_build(self):
        """A malformed port variable is a configuration error."""
        with pytest.raises(ConfigError):
            build_registry({"INDEXER_HEALTHCHECK_PORT": "not-a-port"})


def fake_registry(*services):
    return ServiceRegistry(tuple(services))


class TestNode:
    """Test running several services together."""

    def test_snapshot_before_run(self):
        """All services start out not started and not ready."""
        node = Node(build_registry({}))

        snapshot = node.snapshot()

        assert [status["name"] for status in snapshot] == build_registry({}).names()
        assert all(status["state"] == "not_started" for status in snapshot)
        assert not any(status["ready"] for status in snapshot)
        assert node.is_healthy() is False

    @pytest.mark.asyncio
    async def test_clean_shutdown(self, make_fake_service, free_port_factory):
        """Setting the stop event stops every service without errors."""
        free_port = free_port_factory()
        second_port = free_port_factory()
        make_fake_service("fake-a", port=free_port)
        make_fake_service("fake-b", port=second_port)
        node = Node(
            fake_registry(
                Service("a", "fake-a", str(free_port)),
                Service("b", "fake-b", str(second_port)),
            ),
            grace_period=2.0,
            ready_timeout=5.0,
            poll_interval=0.05
        )
        stop = asyncio.Event()

        run = asyncio.ensure_future(node.run(stop))
        for _ in range(100):
            if all(node.ready.values()):
                break
            await asyncio.sleep(0.05)

        assert node.ready == {"a": True, "b": True}
        assert node.is_healthy()

        stop.set()
        results = await asyncio.wait_for(run, timeout=5)

        assert results == {"a": None, "b": None}
        assert all(
            supervisor.state == ServiceState.STOPPED
            for supervisor in node.supervisors.values()
        )

    @pytest.mark.asyncio
    async def test_crash_stops_whole_node(self, make_fake_service, free_port):
        """One service exiting on its own brings the others down."""
        make_fake_service("fake-ok", port=free_port)
        make_fake_service("fake-crash", delay=0.2, exit_code=2)
        node = Node(
            fake_registry(
                Service("ok", "fake-ok", str(free_port)),
                Service("crash", "fake-crash", "0"),
            ),
            grace_period=2.0,
            ready_timeout=5.0,
            poll_interval=0.05
        )
        stop = asyncio.Event()

        results = await asyncio.wait_for(node.run(stop), timeout=10)

        assert stop.is_set()
        assert results["ok"] is None
        assert isinstance(results["crash"], UnexpectedExitError)
        assert results["crash"].returncode == 2
        assert node.supervisors["ok"].state == ServiceState.STOPPED
        assert node.unexpected_exits.get(service="crash") == 1

    @pytest.mark.asyncio
    async def test_launch_failure_stops_whole_node(self, make_fake_service, free_port):
        """A missing binary is reported and the node shuts down."""
        make_fake_service("fake-ok", port=free_port)
        node = Node(
            fake_registry(
                Service("ok", "fake-ok", str(free_port)),
                Service("ghost", "cartesi-rollups-ghost-xyz", "0"),
            ),
            grace_period=2.0,
            ready_timeout=5.0,
            poll_interval=0.05
        )

        results = await asyncio.wait_for(node.run(asyncio.Event()), timeout=10)

        assert isinstance(results["ghost"], LaunchError)
        assert results["ok"] is None
        assert node.unexpected_exits.get(service="ghost") == 0

    def test_render_metrics(self):
        """Metrics include per-service gauges."""
        node = Node(build_registry({}))
        node.supervisors["indexer"].state = ServiceState.RUNNING

        text = node.render_metrics()

        assert 'rollups_node_service_up{service="indexer"} 1' in text
        assert 'rollups_node_service_up{service="dispatcher"} 0' in text
        assert 'rollups_node_service_ready{service="indexer"} 0' in text
        assert "# TYPE rollups_node_service_unexpected_exits_total counter" in text
