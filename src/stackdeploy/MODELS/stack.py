"""
Views of deployed stacks, rebuilt from labeled platform resources.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class StackStatus(str, Enum):
    """
    Aggregate status of a stack's containers.
    """
    RUNNING = "running"
    STOPPED = "stopped"
    PARTIAL = "partial"

    @classmethod
    def derive(cls, states: List[str]) -> "StackStatus":
        """
        ``running`` if every container runs, ``stopped`` if none does,
        ``partial`` otherwise.
        """
        running = sum(1 for s in states if s == "running")
        if running == 0:
            return cls.STOPPED
        if running == len(states):
            return cls.RUNNING
        return cls.PARTIAL


class PortMapping(BaseModel):
    """A published (or merely exposed) container port."""
    container_port: int
    host_port: int = 0
    protocol: str = "tcp"


class ServiceInstance(BaseModel):
    """The single container backing one service of a stack."""
    name: str
    container_id: str
    image: str
    status: str
    ports: List[PortMapping] = Field(default_factory=list)


class Stack(BaseModel):
    """
    A named group of containers, networks and volumes sharing a project label.
    """
    name: str
    services: List[ServiceInstance] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    volumes: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    status: StackStatus = StackStatus.STOPPED


class StackDetails(Stack):
    """A single stack with container counts."""
    containers: int = 0
    running: int = 0


class StackDeployment(BaseModel):
    """
    Summary returned by a deploy. ``networks`` and ``volumes`` list only
    what this deploy created.
    """
    stack_name: str
    services: List[str] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    volumes: List[str] = Field(default_factory=list)
    message: str = ""
