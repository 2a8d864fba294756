"""
Unit tests for deploy, stop and remove against the in-memory platform.
"""
import threading

import pytest

from stackdeploy.exceptions import (
    ConflictError,
    NotFoundError,
    PlatformError,
    PlatformTimeoutError,
    ValidationError,
)
from stackdeploy.UTILS.stack_lock import StackLockRegistry

THREE_SERVICES = """
services:
  web:
    image: nginx
    depends_on: [api]
  api:
    image: example/api
    depends_on: [db]
  db:
    image: postgres
    volumes:
      - "pgdata:/var/lib/postgresql/data"
networks:
  backend: {}
volumes:
  pgdata: {}
"""


class TestDeploy:

    def test_example_stack(self, orchestrator, platform, example_document):
        result = orchestrator.deploy("myapp", example_document)

        assert result.stack_name == "myapp"
        assert result.services == ["myapp_web_1", "myapp_db_1"]
        assert result.networks == []
        assert result.volumes == ["myapp_data"]
        assert result.message == "Successfully deployed stack 'myapp' with 2 services"

        assert sorted(c.name for c in platform.containers.values()) == ["myapp_db_1", "myapp_web_1"]
        assert all(c.state == "running" for c in platform.containers.values())
        assert all(c.labels["com.docker.compose.project"] == "myapp" for c in platform.containers.values())

    def test_dependency_order(self, orchestrator, platform):
        result = orchestrator.deploy("shop", THREE_SERVICES)
        assert result.services == ["shop_db_1", "shop_api_1", "shop_web_1"]
        assert result.networks == ["shop_backend"]
        assert platform.calls_of("create_container") == ["shop_db_1", "shop_api_1", "shop_web_1"]
        assert platform.created_specs["shop_db_1"]["volumes"] == ["shop_pgdata:/var/lib/postgresql/data:rw"]
        assert platform.created_specs["shop_web_1"]["network"] == "shop_backend"

    def test_networks_and_volumes_before_containers(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        methods = [m for m, _ in platform.calls if m.startswith("create_")]
        assert methods[:2] == ["create_network", "create_volume"]

    def test_existing_networks_and_volumes_reused(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        orchestrator.remove("shop")
        assert "shop_pgdata" in platform.volumes

        result = orchestrator.deploy("shop", THREE_SERVICES)
        assert result.volumes == []
        assert len(result.services) == 3

    def test_failure_rolls_back_created_containers(self, orchestrator, platform):
        platform.fail_create["shop_web_1"] = PlatformError("port is already allocated", platform_status=500)

        with pytest.raises(PlatformError) as exc:
            orchestrator.deploy("shop", THREE_SERVICES)

        assert exc.value.message.startswith("Failed to deploy stack:")
        assert exc.value.suggestions
        assert platform.containers == {}
        assert sorted(platform.calls_of("remove_container")) == ["shop_api_1", "shop_db_1"]
        # rollback runs in reverse creation order
        assert platform.calls_of("stop_container") == ["shop_api_1", "shop_db_1"]
        assert "shop_backend" in platform.networks
        assert "shop_pgdata" in platform.volumes

    def test_first_container_failure_removes_nothing(self, orchestrator, platform):
        platform.fail_create["shop_db_1"] = PlatformError("no such image", platform_status=404)
        with pytest.raises(PlatformError):
            orchestrator.deploy("shop", THREE_SERVICES)
        assert platform.calls_of("remove_container") == []

    def test_start_failure_removes_that_container(self, orchestrator, platform):
        platform.fail_start["shop_api_1"] = PlatformError("bind: address already in use", platform_status=500)
        with pytest.raises(PlatformError):
            orchestrator.deploy("shop", THREE_SERVICES)
        assert platform.containers == {}
        assert sorted(platform.calls_of("remove_container")) == ["shop_api_1", "shop_db_1"]

    def test_rollback_failure_keeps_deploy_error(self, orchestrator, platform):
        platform.fail_create["shop_web_1"] = PlatformError("port is already allocated", platform_status=500)
        platform.fail_remove["shop_db_1"] = PlatformError("device or resource busy", platform_status=500)

        with pytest.raises(PlatformError) as exc:
            orchestrator.deploy("shop", THREE_SERVICES)

        assert "port is already allocated" in exc.value.message
        assert [c.name for c in platform.containers.values()] == ["shop_db_1"]

    def test_timeout_keeps_error_type(self, orchestrator, platform):
        platform.fail_create["shop_api_1"] = PlatformTimeoutError("Timed out after 60s trying to create container")
        with pytest.raises(PlatformTimeoutError):
            orchestrator.deploy("shop", THREE_SERVICES)
        assert platform.containers == {}

    def test_network_failure(self, orchestrator, platform):
        platform.fail_network_create["shop_backend"] = PlatformError("plugin not found", platform_status=500)
        with pytest.raises(PlatformError):
            orchestrator.deploy("shop", THREE_SERVICES)
        assert platform.calls_of("create_container") == []

    def test_redeploy_over_running_stack_conflicts(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        with pytest.raises(PlatformError) as exc:
            orchestrator.deploy("myapp", example_document)
        assert exc.value.platform_status == 409
        # containers of the first deploy are untouched
        assert len(platform.containers) == 2
        assert all(c.state == "running" for c in platform.containers.values())

    @pytest.mark.parametrize("name", ["", "MyApp", "-app", "my app", "app!"])
    def test_invalid_name_makes_no_platform_calls(self, orchestrator, platform, example_document, name):
        with pytest.raises(ValidationError):
            orchestrator.deploy(name, example_document)
        assert platform.calls == []

    def test_invalid_document_makes_no_platform_calls(self, orchestrator, platform):
        with pytest.raises(ValidationError):
            orchestrator.deploy("myapp", "version: '3'\n")
        assert platform.calls == []

    def test_busy_stack(self, platform, engine_config, example_document):
        from stackdeploy.MANAGERS.stack_orchestrator import StackOrchestrator

        locks = StackLockRegistry(timeout=0.1)
        orchestrator = StackOrchestrator(platform, engine_config, locks=locks)
        held = threading.Event()
        release = threading.Event()

        def hold():
            with locks.lease("myapp"):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        try:
            assert held.wait(5)
            with pytest.raises(ConflictError):
                orchestrator.deploy("myapp", example_document)
        finally:
            release.set()
            holder.join()

        assert platform.calls_of("create_container") == []
        assert not locks.is_locked("myapp")
        orchestrator.deploy("myapp", example_document)


class TestStop:

    def test_stop_all(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        orchestrator.stop("myapp")
        assert all(c.state == "exited" for c in platform.containers.values())
        assert sorted(platform.calls_of("stop_container")) == ["myapp_db_1", "myapp_web_1"]

    def test_stop_twice(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        orchestrator.stop("myapp")
        orchestrator.stop("myapp")
        assert len(platform.containers) == 2

    def test_unknown_stack(self, orchestrator, platform):
        with pytest.raises(NotFoundError) as exc:
            orchestrator.stop("ghost")
        assert exc.value.message == "Stack not found: ghost"
        assert platform.calls_of("stop_container") == []

    def test_other_stacks_untouched(self, orchestrator, platform, example_document):
        orchestrator.deploy("one", example_document)
        orchestrator.deploy("two", example_document)
        orchestrator.stop("one")
        states = {c.name: c.state for c in platform.containers.values()}
        assert states["one_web_1"] == "exited"
        assert states["two_web_1"] == "running"

    def test_continues_past_failures(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        platform.fail_stop["myapp_web_1"] = PlatformError("cannot kill container", platform_status=500)

        with pytest.raises(PlatformError) as exc:
            orchestrator.stop("myapp")

        assert "myapp_web_1" in exc.value.message
        assert platform.container_by_name("myapp_db_1").state == "exited"
        assert platform.container_by_name("myapp_web_1").state == "running"

    def test_only_volumes_left(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        orchestrator.remove("myapp")
        assert "myapp_data" in platform.volumes
        stops_before = len(platform.calls_of("stop_container"))

        with pytest.raises(NotFoundError):
            orchestrator.stop("myapp")
        assert len(platform.calls_of("stop_container")) == stops_before


class TestRemove:

    def test_remove_keeps_volumes(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        orchestrator.remove("shop")
        assert platform.containers == {}
        assert platform.networks == {}
        assert list(platform.volumes) == ["shop_pgdata"]

    def test_remove_with_volumes(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        orchestrator.remove("shop", remove_volumes=True)
        assert platform.containers == {}
        assert platform.networks == {}
        assert platform.volumes == {}

    def test_remove_stopped_stack(self, orchestrator, platform, example_document):
        orchestrator.deploy("myapp", example_document)
        orchestrator.stop("myapp")
        orchestrator.remove("myapp")
        assert platform.containers == {}

    def test_remove_only_volumes_left(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        orchestrator.remove("shop")
        orchestrator.remove("shop", remove_volumes=True)
        assert platform.volumes == {}

    def test_unknown_stack(self, orchestrator, platform):
        with pytest.raises(NotFoundError):
            orchestrator.remove("ghost")
        assert platform.calls_of("remove_container") == []

    def test_continues_past_failures(self, orchestrator, platform):
        orchestrator.deploy("shop", THREE_SERVICES)
        platform.fail_remove["shop_api_1"] = PlatformError("device or resource busy", platform_status=500)
        platform.fail_remove_network["shop_backend"] = PlatformError("network has active endpoints", platform_status=403)

        orchestrator.remove("shop", remove_volumes=True)

        assert [c.name for c in platform.containers.values()] == ["shop_api_1"]
        assert "shop_backend" in platform.networks
        assert platform.volumes == {}

    def test_other_stacks_untouched(self, orchestrator, platform, example_document):
        orchestrator.deploy("one", example_document)
        orchestrator.deploy("two", example_document)
        orchestrator.remove("one", remove_volumes=True)
        assert sorted(c.name for c in platform.containers.values()) == ["two_db_1", "two_web_1"]
        assert list(platform.volumes) == ["two_data"]
