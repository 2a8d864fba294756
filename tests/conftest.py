"""
Shared fixtures: an in-memory container platform that behaves like the
Docker client wrapper (labels, filters, 409/304/404 responses).
"""
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from stackdeploy.exceptions import PlatformError
from stackdeploy.MANAGERS.stack_orchestrator import StackOrchestrator
from stackdeploy.MODELS.engine_config import EngineConfig
from stackdeploy.PLATFORM.docker_client import ContainerRecord, NetworkRecord, VolumeRecord

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _matches(labels, filters):
    for f in filters or []:
        key, _, value = f.partition('=')
        if labels.get(key) != value:
            return False
    return True


class FakePlatform:
    """In-memory stand-in for DockerPlatformClient."""

    def __init__(self):
        self.containers = {}
        self.networks = {}
        self.volumes = {}
        self.missing_images = set()
        self.pulled = []
        self.created_specs = {}
        self.calls = []
        # name -> PlatformError to raise
        self.fail_create = {}
        self.fail_start = {}
        self.fail_stop = {}
        self.fail_remove = {}
        self.fail_network_create = {}
        self.fail_remove_network = {}
        self._ids = itertools.count(1)

    # helpers

    def add_container(self, name, labels, state='running', image='busybox', created=None):
        n = next(self._ids)
        cid = f"{n:012x}" * 2
        self.containers[cid] = ContainerRecord(
            id=cid, name=name, image=image, state=state, labels=dict(labels),
            created=created or BASE_TIME + timedelta(seconds=n),
        )
        return cid

    def container_by_name(self, name):
        for record in self.containers.values():
            if record.name == name:
                return record
        return None

    def calls_of(self, method):
        return [args for m, args in self.calls if m == method]

    # containers

    def list_containers(self, all=True, labels=None):
        self.calls.append(('list_containers', labels))
        return [
            c for c in self.containers.values()
            if _matches(c.labels, labels) and (all or c.state == 'running')
        ]

    def inspect_container(self, container_id):
        if container_id not in self.containers:
            raise PlatformError(f"No such container: {container_id}", platform_status=404)
        return self.containers[container_id]

    def create_container(self, name, image, environment=None, ports=None, volumes=None,
                         network='bridge', restart_policy='unless-stopped', labels=None, command=None):
        self.calls.append(('create_container', name))
        if name in self.fail_create:
            raise self.fail_create[name]
        if self.container_by_name(name):
            raise PlatformError(f"Conflict. The container name \"/{name}\" is already in use", platform_status=409)
        self.created_specs[name] = dict(
            image=image, environment=environment, ports=ports, volumes=volumes,
            network=network, restart_policy=restart_policy, labels=labels, command=command,
        )
        return self.add_container(name, labels or {}, state='created', image=image)

    def start_container(self, container_id):
        record = self.containers[container_id]
        self.calls.append(('start_container', record.name))
        if record.name in self.fail_start:
            raise self.fail_start[record.name]
        record.state = 'running'

    def stop_container(self, container_id):
        if container_id not in self.containers:
            raise PlatformError(f"No such container: {container_id}", platform_status=404)
        record = self.containers[container_id]
        self.calls.append(('stop_container', record.name))
        if record.name in self.fail_stop:
            raise self.fail_stop[record.name]
        if record.state != 'running':
            raise PlatformError("container already stopped", platform_status=304)
        record.state = 'exited'

    def remove_container(self, container_id):
        if container_id not in self.containers:
            raise PlatformError(f"No such container: {container_id}", platform_status=404)
        record = self.containers[container_id]
        self.calls.append(('remove_container', record.name))
        if record.name in self.fail_remove:
            raise self.fail_remove[record.name]
        if record.state == 'running':
            raise PlatformError("You cannot remove a running container", platform_status=409)
        del self.containers[container_id]

    # networks

    def create_network(self, name, driver='bridge', labels=None, options=None):
        self.calls.append(('create_network', name))
        if name in self.fail_network_create:
            raise self.fail_network_create[name]
        if name in self.networks:
            raise PlatformError(f"network with name {name} already exists", platform_status=409)
        self.networks[name] = NetworkRecord(name=name, id=f"net-{name}", labels=dict(labels or {}))

    def list_networks(self, labels=None):
        self.calls.append(('list_networks', labels))
        return [n for n in self.networks.values() if _matches(n.labels, labels)]

    def remove_network(self, name):
        self.calls.append(('remove_network', name))
        if name in self.fail_remove_network:
            raise self.fail_remove_network[name]
        if name not in self.networks:
            raise PlatformError(f"network {name} not found", platform_status=404)
        del self.networks[name]

    # volumes

    def create_volume(self, name, driver='local', labels=None, driver_opts=None):
        self.calls.append(('create_volume', name))
        if name in self.volumes:
            raise PlatformError(f"volume {name} already exists", platform_status=409)
        self.volumes[name] = VolumeRecord(name=name, labels=dict(labels or {}))

    def list_volumes(self, labels=None):
        self.calls.append(('list_volumes', labels))
        return [v for v in self.volumes.values() if _matches(v.labels, labels)]

    def remove_volume(self, name):
        self.calls.append(('remove_volume', name))
        if name not in self.volumes:
            raise PlatformError(f"get {name}: no such volume", platform_status=404)
        del self.volumes[name]

    # images

    def image_exists(self, ref):
        return ref not in self.missing_images

    def pull_image(self, ref):
        self.pulled.append(ref)
        self.missing_images.discard(ref)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def engine_config():
    return EngineConfig(teardown_workers=4, lock_timeout=0.2, retries=1, retry_wait=0)


@pytest.fixture
def orchestrator(platform, engine_config):
    return StackOrchestrator(platform, engine_config)


@pytest.fixture
def example_document():
    return """
version: "3.8"
services:
  web:
    image: nginx
    ports:
      - "8080:80"
  db:
    image: postgres
    volumes:
      - "data:/var/lib/postgresql/data"
volumes:
  data: {}
"""
