# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Container platform client.

Wraps the Docker SDK with the calls the stack engine needs. Every call runs
with the configured timeout and a bounded retry on transient transport
failures; SDK errors come out as PlatformError with the HTTP status kept.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import docker
import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import PlatformError, PlatformTimeoutError
from ..MODELS.engine_config import EngineConfig
from ..MODELS.stack import PortMapping

logger = logging.getLogger(__name__)

DAEMON_SUGGESTIONS = [
    "Check that the Docker daemon is running",
    "Verify the Docker host setting (STACKDEPLOY_DOCKER_HOST or DOCKER_HOST)",
]


@dataclass
class ContainerRecord:
    """A container as listed by the platform."""

    id: str
    name: str
    image: str
    state: str
    labels: Dict[str, str] = field(default_factory=dict)
    created: Optional[datetime] = None
    ports: List[PortMapping] = field(default_factory=list)


@dataclass
class NetworkRecord:
    """A network as listed by the platform."""

    name: str
    id: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeRecord:
    """A volume as listed by the platform."""

    name: str
    labels: Dict[str, str] = field(default_factory=dict)


def parse_created(value: Union[str, int, float, None]) -> Optional[datetime]:
    """
    Parses a creation time from inspect output (RFC 3339 with nanoseconds)
    or from list output (epoch seconds).
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = value.rstrip("Z")
    offset = ""
    for sign in ("+", "-"):
        idx = text.rfind(sign)
        if idx > text.find("T"):
            text, offset = text[:idx], text[idx:]
            break
    if "." in text:
        base, fraction = text.split(".", 1)
        text = f"{base}.{fraction[:6].ljust(6, '0')}"
    parsed = datetime.fromisoformat(text + offset)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_ports(attrs: Dict[str, Any]) -> List[PortMapping]:
    """
    Port mappings from container inspect output. Stopped containers have no
    live NetworkSettings ports, so the configured bindings are used instead.
    """
    ports = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
    if not ports:
        ports = (attrs.get("HostConfig") or {}).get("PortBindings") or {}

    mappings: List[PortMapping] = []
    seen = set()
    for key, bindings in ports.items():
        port, _, protocol = key.partition("/")
        for binding in bindings or [{}]:
            host_port = int(binding.get("HostPort") or 0)
            ident = (int(port), host_port, protocol or "tcp")
            # IPv4 and IPv6 bindings of the same port
            if ident in seen:
                continue
            seen.add(ident)
            mappings.append(PortMapping(container_port=ident[0], host_port=ident[1], protocol=ident[2]))
    return mappings


class DockerPlatformClient:
    """
    Client for the container platform, backed by the Docker Engine API.
    """

    def __init__(self, config: Optional[EngineConfig] = None, client: Optional[docker.DockerClient] = None):
        """
        Initialize the platform client.

        Args:
            config: Engine configuration (timeouts, retries, daemon address).
            client: An existing Docker SDK client; created on first use otherwise.
        """
        self.config = config or EngineConfig()
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        """The Docker SDK client, connected on first use."""
        with self._client_lock:
            if self._client is None:
                try:
                    if self.config.docker_host:
                        self._client = docker.DockerClient(
                            base_url=self.config.docker_host, timeout=self.config.timeout
                        )
                    else:
                        self._client = docker.from_env(timeout=self.config.timeout)
                except docker.errors.DockerException as e:
                    raise PlatformError(
                        f"Cannot connect to the Docker daemon: {e}",
                        cause=e,
                        suggestions=DAEMON_SUGGESTIONS,
                    ) from e
            return self._client

    def _retrying(self, idempotent: bool) -> Retrying:
        """Retry policy; creates are only retried when the request never left."""
        if idempotent:
            transient = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
        else:
            transient = (requests.exceptions.ConnectionError,)
        return Retrying(
            stop=stop_after_attempt(self.config.retries),
            wait=wait_exponential(multiplier=self.config.retry_wait, max=10),
            retry=retry_if_exception_type(transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _call(self, action: str, fn: Callable[..., Any], *args, idempotent: bool = True, **kwargs) -> Any:
        """
        Runs one SDK call under the retry policy and converts its errors.

        :param action: What the call does, for error messages ("create network x").
        """
        try:
            return self._retrying(idempotent)(fn, *args, **kwargs)
        except requests.exceptions.Timeout as e:
            raise PlatformTimeoutError(
                f"Timed out after {self.config.timeout}s trying to {action}",
                cause=e,
                suggestions=["Check the Docker daemon's load", "Raise STACKDEPLOY_TIMEOUT"],
            ) from e
        except docker.errors.APIError as e:
            raise PlatformError(
                f"Failed to {action}: {e.explanation or e}",
                platform_status=e.status_code,
                cause=e,
            ) from e
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise PlatformError(f"Failed to {action}: {e}", cause=e, suggestions=DAEMON_SUGGESTIONS) from e

    # Containers

    def list_containers(self, all: bool = True, labels: Optional[List[str]] = None) -> List[ContainerRecord]:
        """
        List containers, optionally only those matching ``key=value`` label filters.
        """
        filters = {"label": labels} if labels else None
        containers = self._call(
            "list containers", self.client.containers.list, all=all, filters=filters, ignore_removed=True
        )
        return [self._container_record(c.attrs) for c in containers]

    def inspect_container(self, container_id: str) -> ContainerRecord:
        attrs = self._call(f"inspect container {container_id}", self.client.api.inspect_container, container_id)
        return self._container_record(attrs)

    def create_container(
        self,
        name: str,
        image: str,
        environment: Optional[List[str]] = None,
        ports: Optional[Dict[str, Any]] = None,
        volumes: Optional[List[str]] = None,
        network: str = "bridge",
        restart_policy: str = "unless-stopped",
        labels: Optional[Dict[str, str]] = None,
        command: Optional[Union[str, List[str]]] = None,
    ) -> str:
        """
        Create (but do not start) a container.

        Args:
            ports: ``{"80/tcp": 8080}`` style bindings, as the SDK expects.
            volumes: ``source:target:mode`` bind strings.

        Returns:
            The new container's id.
        """
        container = self._call(
            f"create container {name}",
            self.client.containers.create,
            image,
            command=command,
            name=name,
            environment=environment or [],
            ports=ports or {},
            volumes=volumes or [],
            network=network,
            restart_policy={"Name": restart_policy},
            labels=labels or {},
            idempotent=False,
        )
        return container.id

    def start_container(self, container_id: str) -> None:
        self._call(f"start container {container_id}", self.client.api.start, container_id)

    def stop_container(self, container_id: str) -> None:
        self._call(f"stop container {container_id}", self.client.api.stop, container_id)

    def remove_container(self, container_id: str) -> None:
        self._call(f"remove container {container_id}", self.client.api.remove_container, container_id)

    # Networks

    def create_network(self, name: str, driver: str = "bridge", labels: Optional[Dict[str, str]] = None,
                       options: Optional[Dict[str, str]] = None) -> None:
        self._call(
            f"create network {name}",
            self.client.networks.create,
            name,
            driver=driver,
            labels=labels or {},
            options=options or None,
            idempotent=False,
        )

    def list_networks(self, labels: Optional[List[str]] = None) -> List[NetworkRecord]:
        filters = {"label": labels} if labels else None
        networks = self._call("list networks", self.client.networks.list, filters=filters)
        return [
            NetworkRecord(name=n.attrs.get("Name", n.name), id=n.id, labels=n.attrs.get("Labels") or {})
            for n in networks
        ]

    def remove_network(self, name: str) -> None:
        self._call(f"remove network {name}", self.client.api.remove_network, name)

    # Volumes

    def create_volume(self, name: str, driver: str = "local", labels: Optional[Dict[str, str]] = None,
                      driver_opts: Optional[Dict[str, str]] = None) -> None:
        self._call(
            f"create volume {name}",
            self.client.volumes.create,
            name=name,
            driver=driver,
            driver_opts=driver_opts or None,
            labels=labels or {},
            idempotent=False,
        )

    def list_volumes(self, labels: Optional[List[str]] = None) -> List[VolumeRecord]:
        filters = {"label": labels} if labels else None
        volumes = self._call("list volumes", self.client.volumes.list, filters=filters)
        return [VolumeRecord(name=v.name, labels=v.attrs.get("Labels") or {}) for v in volumes]

    def remove_volume(self, name: str) -> None:
        self._call(f"remove volume {name}", self.client.api.remove_volume, name)

    # Images

    def image_exists(self, ref: str) -> bool:
        try:
            self._call(f"inspect image {ref}", self.client.api.inspect_image, ref)
        except PlatformError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def pull_image(self, ref: str) -> None:
        logger.info("Pulling image %s", ref)
        self._call(f"pull image {ref}", self.client.images.pull, ref)

    @staticmethod
    def _container_record(attrs: Dict[str, Any]) -> ContainerRecord:
        config = attrs.get("Config") or {}
        state = attrs.get("State")
        return ContainerRecord(
            id=attrs.get("Id", ""),
            name=(attrs.get("Name") or "").lstrip("/"),
            image=config.get("Image") or attrs.get("Image", ""),
            state=state.get("Status", "unknown") if isinstance(state, dict) else (state or "unknown"),
            labels=config.get("Labels") or {},
            created=parse_created(attrs.get("Created")),
            ports=parse_ports(attrs),
        )
