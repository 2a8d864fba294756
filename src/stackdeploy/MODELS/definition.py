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
Models for a parsed stack document: services, networks, volumes and the
port/volume bindings derived from a service's short-syntax strings.
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# [[ip:]host:]container[/protocol]
PORT_PATTERN = re.compile(
    r'^(?:(?:(?P<ip>\d{1,3}(?:\.\d{1,3}){3}|\[[0-9a-fA-F:]+\]):)?(?P<host>\d+):)?'
    r'(?P<container>\d+)(?:/(?P<protocol>tcp|udp))?$'
)

ScalarValue = Union[str, int, float, bool, None]


class RestartPolicyCondition(str, Enum):
    """
    Conditions under which the platform restarts a service container.
    """
    NO = "no"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    UNLESS_STOPPED = "unless-stopped"


class PortBinding(BaseModel):
    """
    A container port, optionally published on a host port.
    """
    model_config = ConfigDict(frozen=True)

    container_port: int
    host_port: Optional[int] = None
    host_ip: Optional[str] = None
    protocol: str = "tcp"

    @property
    def key(self) -> str:
        return f"{self.container_port}/{self.protocol}"

    @classmethod
    def parse(cls, value: str) -> "PortBinding":
        """
        Parses ``[[ip:]hostPort:]containerPort[/protocol]``.

        :raises ValueError: If the string does not match or a port is out of range.
        """
        match = PORT_PATTERN.match(value)
        if not match:
            raise ValueError(f"invalid port mapping '{value}', expected 'hostPort:containerPort'")
        container_port = int(match.group("container"))
        host_port = int(match.group("host")) if match.group("host") else None
        for port in (container_port, host_port):
            if port is not None and not 1 <= port <= 65535:
                raise ValueError(f"port {port} in '{value}' is out of range 1-65535")
        ip = match.group("ip")
        return cls(
            container_port=container_port,
            host_port=host_port,
            host_ip=ip.strip("[]") if ip else None,
            protocol=match.group("protocol") or "tcp",
        )


class VolumeMount(BaseModel):
    """
    Defines a mapping between a volume source and a path inside the container.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    read_only: bool = False

    @property
    def is_bind(self) -> bool:
        """Host paths are bind mounts, anything else names a stack volume."""
        return self.source.startswith('/') or self.source.startswith('.')

    @property
    def mode(self) -> str:
        return "ro" if self.read_only else "rw"

    @classmethod
    def parse(cls, value: str) -> "VolumeMount":
        """
        Parses ``source:target[:ro|rw]``.

        :raises ValueError: If the string has no target or an unknown mode.
        """
        parts = value.split(':')
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            raise ValueError(f"invalid volume mapping '{value}', expected 'source:target[:mode]'")
        read_only = False
        if len(parts) == 3:
            if parts[2] not in ("ro", "rw"):
                raise ValueError(f"invalid volume mode '{parts[2]}' in '{value}'")
            read_only = parts[2] == "ro"
        return cls(source=parts[0], target=parts[1], read_only=read_only)


class ServiceSpec(BaseModel):
    """
    One entry of the document's ``services`` section.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str
    image: str
    environment: Union[List[str], Dict[str, ScalarValue]] = Field(default_factory=list)
    ports: List[str] = Field(default_factory=list)
    volumes: List[str] = Field(default_factory=list)
    restart: RestartPolicyCondition = RestartPolicyCondition.UNLESS_STOPPED
    command: Optional[Union[str, List[str]]] = None
    depends_on: List[str] = Field(default_factory=list)

    @field_validator("image")
    @classmethod
    def _image_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("image must not be empty")
        return value

    @field_validator("environment", mode="before")
    @classmethod
    def _environment_shape(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            for entry in value:
                if not isinstance(entry, str):
                    raise ValueError(f"environment entries must be 'KEY=VALUE' strings, got {entry!r}")
        return value

    @field_validator("ports", mode="before")
    @classmethod
    def _ports_shape(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("ports must be a list")
        ports = [str(p) if isinstance(p, int) else p for p in value]
        for port in ports:
            if not isinstance(port, str):
                raise ValueError(f"port entries must be strings, got {port!r}")
            PortBinding.parse(port)
        return ports

    @field_validator("volumes", mode="before")
    @classmethod
    def _volumes_shape(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("volumes must be a list")
        for entry in value:
            if not isinstance(entry, str):
                raise ValueError(f"volume entries must be 'source:target' strings, got {entry!r}")
            VolumeMount.parse(entry)
        return value

    @field_validator("depends_on", mode="before")
    @classmethod
    def _depends_on_shape(cls, value: Any) -> Any:
        # Long form is a map of service -> condition
        if value is None:
            return []
        if isinstance(value, dict):
            return list(value.keys())
        if isinstance(value, str):
            return [value]
        return value

    def env_list(self) -> List[str]:
        """
        Environment as ``KEY=VALUE`` strings, whichever form the document used.
        """
        if isinstance(self.environment, list):
            return list(self.environment)
        env = []
        for key, value in self.environment.items():
            if value is None:
                env.append(f"{key}=")
            elif isinstance(value, bool):
                env.append(f"{key}={'true' if value else 'false'}")
            else:
                env.append(f"{key}={value}")
        return env

    def port_bindings(self) -> List[PortBinding]:
        return [PortBinding.parse(p) for p in self.ports]

    def volume_mounts(self) -> List[VolumeMount]:
        return [VolumeMount.parse(v) for v in self.volumes]


class NetworkSpec(BaseModel):
    """An entry of the ``networks`` section."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    driver: str = "bridge"
    driver_opts: Dict[str, str] = Field(default_factory=dict)


class VolumeSpec(BaseModel):
    """An entry of the ``volumes`` section."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    driver: str = "local"
    driver_opts: Dict[str, str] = Field(default_factory=dict)


class Definition(BaseModel):
    """
    Complete parsed stack document.
    Equivalent to a validated docker-compose.yml file.
    """
    model_config = ConfigDict(frozen=True)

    version: str = "3"
    services: Dict[str, ServiceSpec]
    networks: Dict[str, NetworkSpec] = Field(default_factory=dict)
    volumes: Dict[str, VolumeSpec] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        # version: 3.8 decodes as a float
        if value is None:
            return "3"
        return str(value)

    @field_validator("services")
    @classmethod
    def _has_services(cls, value: Dict[str, ServiceSpec]) -> Dict[str, ServiceSpec]:
        if not value:
            raise ValueError("at least one service must be declared")
        return value

    @model_validator(mode="after")
    def _named_volumes_declared(self) -> "Definition":
        # An undeclared named volume would be created implicitly, without the stack labels
        for service in self.services.values():
            for mount in service.volume_mounts():
                if not mount.is_bind and mount.source not in self.volumes:
                    raise ValueError(
                        f"service '{service.name}' refers to undefined volume '{mount.source}'"
                    )
        return self

    @property
    def attachment_network(self) -> Optional[str]:
        """
        Key of the first declared network; every service is attached to it.
        """
        return next(iter(self.networks), None)
