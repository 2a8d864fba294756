"""
Deterministic names and labels for every resource belonging to a stack.

The project label is the only link between a stack and its resources; a
resource created without it can never be found again by the engine.
"""
import re
from typing import Dict, List

from ..exceptions import ValidationError

PROJECT_LABEL = "com.docker.compose.project"
ROLE_LABELS = {
    "service": "com.docker.compose.service",
    "network": "com.docker.compose.network",
    "volume": "com.docker.compose.volume",
}
REPLICA_INDEX = 1

STACK_NAME_PATTERN = re.compile(r'^[a-z0-9][a-z0-9_-]*$')


def validate_stack_name(name: str) -> str:
    """
    Checks a stack name: lowercase letter or digit first, then letters,
    digits, hyphens and underscores.

    :raises ValidationError: If the name does not match.
    """
    if not name or not STACK_NAME_PATTERN.match(name):
        raise ValidationError(
            "Invalid stack name: must be lowercase alphanumeric with hyphens/underscores",
            details={"stack_name": name},
            suggestions=["Use lowercase letters, numbers, hyphens, and underscores only"],
        )
    return name


def network_name(stack: str, key: str) -> str:
    return f"{stack}_{key}"


def volume_name(stack: str, key: str) -> str:
    return f"{stack}_{key}"


def volume_source(stack: str, source: str) -> str:
    """
    Source of a service volume entry as the platform should see it. Host
    paths (starting with '/' or '.') are bind mounts and stay as they are;
    anything else names a stack volume.
    """
    if source.startswith('/') or source.startswith('.'):
        return source
    return volume_name(stack, source)


def container_name(stack: str, service: str) -> str:
    return f"{stack}_{service}_{REPLICA_INDEX}"


def labels(stack: str, role: str, key: str) -> Dict[str, str]:
    """
    Label set for a resource of the given role ('service', 'network' or 'volume').
    """
    return {PROJECT_LABEL: stack, ROLE_LABELS[role]: key}


def project_filter(stack: str) -> List[str]:
    """Platform label filter matching every resource of a stack."""
    return [f"{PROJECT_LABEL}={stack}"]
