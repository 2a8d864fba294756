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
Orchestration of a whole stack: deploy with rollback, stop and remove.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from ..exceptions import (
    ContainerStartError,
    NotFoundError,
    PlatformError,
    PlatformTimeoutError,
    StackError,
)
from ..MODELS.engine_config import EngineConfig
from ..MODELS.stack import StackDeployment
from ..PARSERS.compose_parser import ComposeParser
from ..PLATFORM.docker_client import ContainerRecord
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..UTILS import resource_namer
from ..UTILS.stack_lock import StackLockRegistry
from .container_manager import ContainerManager
from .network_manager import NetworkManager
from .stack_inspector import NOT_FOUND_SUGGESTIONS, StackInspector
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)

DEPLOY_SUGGESTIONS = ['Check Compose file syntax', 'Verify images are available', 'Check port availability']

T = TypeVar("T")


class StackOrchestrator:
    """
    Provisions stacks and tears them down again.
    """
    def __init__(self,
                 platform,
                 config: Optional[EngineConfig] = None,
                 parser: Optional[ComposeParser] = None,
                 locks: Optional[StackLockRegistry] = None):
        """
        Initializes the orchestrator.

        :param platform: The container platform client.
        :param config: Engine configuration.
        :param parser: Parser for stack documents.
        :param locks: Per-stack leases, shared between orchestrators of one process.
        """
        self.platform = platform
        self.config = config or EngineConfig()
        self.parser = parser or ComposeParser()
        self.locks = locks or StackLockRegistry(timeout=self.config.lock_timeout)
        self.resolver = DependencyResolver()
        self.inspector = StackInspector(platform)
        self.networks = NetworkManager(platform)
        self.volumes = VolumeManager(platform)
        self.containers = ContainerManager(platform, pull_images=self.config.pull_images)

    def deploy(self, name: str, content: str) -> StackDeployment:
        """
        Deploys a stack document: networks, then volumes, then one container
        per service, created one after another.

        If a container step fails, every container created by this call is
        stopped and removed again before the error is raised. Networks and
        volumes are left in place; deploying again reuses them.

        :param name: The stack name.
        :param content: The stack document (YAML).
        :return: Summary of what was created.
        :raises ValidationError: If the name or the document is invalid.
        :raises PlatformError: If provisioning failed.
        """
        resource_namer.validate_stack_name(name)
        definition = self.parser.parse_from_string(content)
        order = self.resolver.resolve_order(definition)

        with self.locks.lease(name, "deploy"):
            logger.info("Deploying stack %s: %s", name, ', '.join(order))
            created_networks: List[str] = []
            created_volumes: List[str] = []
            created: List[Tuple[str, str]] = []  # (container name, id)

            try:
                for key, spec in definition.networks.items():
                    if self.networks.ensure(name, key, spec):
                        created_networks.append(resource_namer.network_name(name, key))

                for key, spec in definition.volumes.items():
                    if self.volumes.ensure(name, key, spec):
                        created_volumes.append(resource_namer.volume_name(name, key))

                for service_name in order:
                    service = definition.services[service_name]
                    try:
                        container_id = self.containers.provision(name, service, definition)
                    except ContainerStartError as e:
                        created.append((e.container_name, e.container_id))
                        raise
                    created.append((resource_namer.container_name(name, service_name), container_id))

            except PlatformError as e:
                logger.error("Stack %s deployment failed, cleaning up: %s", name, e.message)
                self._rollback(created)
                error_type = PlatformTimeoutError if isinstance(e, PlatformTimeoutError) else PlatformError
                raise error_type(
                    f"Failed to deploy stack: {e.message}",
                    platform_status=e.platform_status,
                    cause=e,
                    suggestions=DEPLOY_SUGGESTIONS,
                ) from e
            except Exception:
                logger.exception("Stack %s deployment failed, cleaning up", name)
                self._rollback(created)
                raise

        services = [container for container, _ in created]
        logger.info("Deployed stack %s with %d services", name, len(services))
        return StackDeployment(
            stack_name=name,
            services=services,
            networks=created_networks,
            volumes=created_volumes,
            message=f"Successfully deployed stack '{name}' with {len(services)} services",
        )

    def stop(self, name: str) -> None:
        """
        Stops every container of a stack concurrently. Containers that are
        already stopped count as stopped.

        :raises NotFoundError: If no container carries the stack's label.
        :raises PlatformError: If some containers could not be stopped; the
            others are stopped regardless.
        """
        resources = self.inspector.discover(name)
        if not resources.containers:
            raise NotFoundError('Stack', name, NOT_FOUND_SUGGESTIONS)

        logger.info("Stopping stack %s (%d containers)", name, len(resources.containers))
        failures = self._for_each(self._stop_container, resources.containers, lambda c: f"container {c.name}")
        if failures:
            failed = ', '.join(c.name for c, _ in failures)
            raise PlatformError(
                f"Failed to stop stack: could not stop {failed}",
                cause=failures[0][1],
                suggestions=['Inspect the failing containers', 'Retry the stop'],
            )

    def remove(self, name: str, remove_volumes: bool = False) -> None:
        """
        Removes every container and network of a stack, and its volumes when
        asked to. A resource that cannot be removed is logged and skipped.

        :param name: The stack name.
        :param remove_volumes: Also remove the stack's named volumes.
        :raises NotFoundError: If nothing carries the stack's label.
        """
        with self.locks.lease(name, "remove"):
            resources = self.inspector.discover(name)
            if resources.empty:
                raise NotFoundError('Stack', name, NOT_FOUND_SUGGESTIONS)

            logger.info("Removing stack %s", name)
            failures = self._for_each(self._remove_container, resources.containers, lambda c: f"container {c.name}")
            failures += self._for_each(
                lambda n: self.platform.remove_network(n.name), resources.networks, lambda n: f"network {n.name}"
            )
            if remove_volumes:
                failures += self._for_each(
                    lambda v: self.platform.remove_volume(v.name), resources.volumes, lambda v: f"volume {v.name}"
                )
            elif resources.volumes:
                logger.info("Keeping volumes of stack %s: %s", name, ', '.join(v.name for v in resources.volumes))

            if failures:
                logger.warning("Stack %s removed with %d leftover resources", name, len(failures))
            else:
                logger.info("Removed stack %s", name)

    def _rollback(self, created: List[Tuple[str, str]]) -> None:
        """
        Stops and removes the containers created by a failed deploy.
        Failures are logged and ignored so the deploy error stays the one raised.
        """
        for container_name, container_id in reversed(created):
            try:
                self._stop_and_remove(container_id)
                logger.info("Rolled back container %s", container_name)
            except StackError as e:
                logger.warning("Failed to clean up container %s: %s", container_name, e.message)

    def _stop_container(self, container: ContainerRecord) -> None:
        try:
            self.platform.stop_container(container.id)
        except PlatformError as e:
            if not e.is_not_modified:
                raise
            logger.debug("Container %s was already stopped", container.name)

    def _remove_container(self, container: ContainerRecord) -> None:
        self._stop_and_remove(container.id)

    def _stop_and_remove(self, container_id: str) -> None:
        try:
            self.platform.stop_container(container_id)
        except PlatformError as e:
            if not (e.is_not_modified or e.is_not_found):
                raise
        try:
            self.platform.remove_container(container_id)
        except PlatformError as e:
            if not e.is_not_found:
                raise

    def _for_each(self,
                  action: Callable[[T], None],
                  items: Sequence[T],
                  describe: Callable[[T], str]) -> List[Tuple[T, StackError]]:
        """
        Runs ``action`` on every item concurrently, continuing past failures.

        :return: The items that failed, with their errors.
        """
        if not items:
            return []
        failures: List[Tuple[T, StackError]] = []
        workers = min(self.config.teardown_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [(item, pool.submit(action, item)) for item in items]
            for item, future in futures:
                try:
                    future.result()
                except StackError as e:
                    logger.error("Error on %s: %s", describe(item), e.message)
                    failures.append((item, e))
        return failures
