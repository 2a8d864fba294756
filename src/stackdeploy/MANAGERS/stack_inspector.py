"""
Rebuilds stack views from live platform state.

Nothing here is cached: every call lists the platform's containers, networks
and volumes again and groups them by project label.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List

from ..exceptions import NotFoundError
from ..MODELS.stack import ServiceInstance, Stack, StackDetails, StackStatus
from ..PLATFORM.docker_client import ContainerRecord, NetworkRecord, VolumeRecord
from ..UTILS import resource_namer

logger = logging.getLogger(__name__)

NOT_FOUND_SUGGESTIONS = ['Verify stack name', 'List available stacks with `stackdeploy ls`']


@dataclass
class StackResources:
    """Every platform resource carrying one stack's project label."""

    name: str
    containers: List[ContainerRecord] = field(default_factory=list)
    networks: List[NetworkRecord] = field(default_factory=list)
    volumes: List[VolumeRecord] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.containers or self.networks or self.volumes)


class StackInspector:
    """
    Lists stacks and their details by scanning labeled platform resources.
    """
    def __init__(self, platform):
        """
        :param platform: The container platform client.
        """
        self.platform = platform

    def discover(self, name: str) -> StackResources:
        """
        Collects the containers, networks and volumes labeled for ``name``.
        """
        label_filter = resource_namer.project_filter(name)
        return StackResources(
            name=name,
            containers=self._owned(self.platform.list_containers(all=True, labels=label_filter), name),
            networks=self._owned(self.platform.list_networks(labels=label_filter), name),
            volumes=self._owned(self.platform.list_volumes(labels=label_filter), name),
        )

    def list(self) -> List[Stack]:
        """
        Every stack that has at least one container, sorted by name.
        """
        groups: Dict[str, List[ContainerRecord]] = OrderedDict()
        for container in self.platform.list_containers(all=True):
            project = container.labels.get(resource_namer.PROJECT_LABEL)
            if project:
                groups.setdefault(project, []).append(container)

        stacks = []
        for name in sorted(groups):
            label_filter = resource_namer.project_filter(name)
            networks = self._owned(self.platform.list_networks(labels=label_filter), name)
            volumes = self._owned(self.platform.list_volumes(labels=label_filter), name)
            stacks.append(self._build(Stack, name, groups[name], networks, volumes))
        logger.debug("Found %d stacks", len(stacks))
        return stacks

    def get_details(self, name: str) -> StackDetails:
        """
        One stack, rebuilt from its labeled resources.

        :raises NotFoundError: If no container carries the stack's label.
        """
        resources = self.discover(name)
        if not resources.containers:
            raise NotFoundError('Stack', name, NOT_FOUND_SUGGESTIONS)
        details = self._build(StackDetails, name, resources.containers, resources.networks, resources.volumes)
        details.containers = len(resources.containers)
        details.running = sum(1 for c in resources.containers if c.state == "running")
        return details

    @staticmethod
    def _owned(records, name):
        # Label filters are applied by the platform; check again in case a client ignores them
        return [r for r in records if r.labels.get(resource_namer.PROJECT_LABEL) == name]

    @staticmethod
    def _build(model, name, containers, networks, volumes):
        services = [
            ServiceInstance(
                name=c.labels.get(resource_namer.ROLE_LABELS["service"]) or c.name,
                container_id=c.id,
                image=c.image,
                status=c.state,
                ports=list(c.ports),
            )
            for c in containers
        ]
        created = [c.created for c in containers if c.created is not None]
        return model(
            name=name,
            services=services,
            networks=[n.name for n in networks],
            volumes=[v.name for v in volumes],
            created_at=min(created) if created else None,
            status=StackStatus.derive([c.state for c in containers]),
        )
