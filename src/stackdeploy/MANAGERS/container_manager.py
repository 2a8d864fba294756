"""
Container provisioning for a single service of a stack.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import ContainerStartError, PlatformError
from ..MODELS.definition import Definition, PortBinding, ServiceSpec
from ..UTILS import resource_namer
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)

PortTarget = Union[None, int, Tuple[str, Optional[int]]]


class ContainerManager:
    """
    Creates and starts the container backing one service.
    """
    def __init__(self, platform, pull_images: bool = True):
        """
        :param platform: The container platform client.
        :param pull_images: Pull an image before creating a container when it is not present locally.
        """
        self.platform = platform
        self.pull_images = pull_images

    def provision(self, stack: str, service: ServiceSpec, definition: Definition) -> str:
        """
        Prepares environment, ports, volumes and network, then creates and
        starts the service container.

        :param stack: The stack name.
        :param service: The service to provision.
        :param definition: The whole definition, for the attachment network.
        :return: The platform id of the started container.
        :raises PlatformError: If any platform call fails.
        :raises ContainerStartError: If the container was created but did not start.
        """
        name = resource_namer.container_name(stack, service.name)

        if self.pull_images and not self.platform.image_exists(service.image):
            self.platform.pull_image(service.image)

        container_id = self.platform.create_container(
            name=name,
            image=service.image,
            environment=service.env_list(),
            ports=self.port_bindings(service.port_bindings()),
            volumes=self.volume_binds(stack, service),
            network=self.network_mode(stack, definition),
            restart_policy=service.restart.value,
            labels=resource_namer.labels(stack, "service", service.name),
            command=service.command,
        )
        logger.info("Created container %s (%s)", name, container_id[:12])

        try:
            self.platform.start_container(container_id)
        except PlatformError as e:
            raise ContainerStartError(container_id, name, e) from e
        logger.info("Started container %s", name)
        return container_id

    @staticmethod
    def port_bindings(bindings: List[PortBinding]) -> Dict[str, Any]:
        """
        Converts parsed port entries to ``{"80/tcp": 8080}``. Unpublished
        ports map to None so the platform picks a host port.
        """
        ports: Dict[str, Any] = {}
        for binding in bindings:
            target: PortTarget = binding.host_port
            if binding.host_ip:
                target = (binding.host_ip, binding.host_port)
            if binding.key not in ports:
                ports[binding.key] = target
            elif isinstance(ports[binding.key], list):
                ports[binding.key].append(target)
            else:
                # Same container port published more than once
                ports[binding.key] = [ports[binding.key], target]
        return ports

    @staticmethod
    def volume_binds(stack: str, service: ServiceSpec) -> List[str]:
        return [VolumeManager.bind_string(stack, mount) for mount in service.volume_mounts()]

    @staticmethod
    def network_mode(stack: str, definition: Definition) -> str:
        """
        First declared network of the stack, or the default bridge.
        """
        key = definition.attachment_network
        if key is None:
            return "bridge"
        return resource_namer.network_name(stack, key)
