"""
Single entry point for callers (CLI, API layers) to the stack engine.
"""
from typing import List, Optional

from ..MODELS.definition import Definition
from ..MODELS.engine_config import EngineConfig
from ..MODELS.stack import Stack, StackDeployment, StackDetails
from ..PARSERS.compose_parser import ComposeParser
from ..PLATFORM.docker_client import DockerPlatformClient
from ..UTILS.stack_lock import StackLockRegistry
from .stack_inspector import StackInspector
from .stack_orchestrator import StackOrchestrator


class StackService:
    """
    Parses, deploys, lists, stops and removes stacks.

    ``deploy``, ``stop`` and ``remove`` go through the orchestrator;
    ``list`` and ``get_details`` read platform state through the inspector.
    """
    def __init__(self,
                 platform=None,
                 config: Optional[EngineConfig] = None,
                 locks: Optional[StackLockRegistry] = None):
        self.config = config or EngineConfig()
        self.platform = platform if platform is not None else DockerPlatformClient(self.config)
        self.parser = ComposeParser()
        self.orchestrator = StackOrchestrator(self.platform, self.config, parser=self.parser, locks=locks)
        self.inspector = StackInspector(self.platform)

    def parse(self, content: str) -> Definition:
        return self.parser.parse_from_string(content)

    def deploy(self, name: str, content: str) -> StackDeployment:
        return self.orchestrator.deploy(name, content)

    def list(self) -> List[Stack]:
        return self.inspector.list()

    def get_details(self, name: str) -> StackDetails:
        return self.inspector.get_details(name)

    def stop(self, name: str) -> None:
        self.orchestrator.stop(name)

    def remove(self, name: str, remove_volumes: bool = False) -> None:
        self.orchestrator.remove(name, remove_volumes=remove_volumes)
