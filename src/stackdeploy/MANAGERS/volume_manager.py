"""
Volume provisioning for stacks, and resolution of service volume entries
into platform bind strings.
"""
import logging

from ..exceptions import PlatformError
from ..MODELS.definition import VolumeMount, VolumeSpec
from ..UTILS import resource_namer

logger = logging.getLogger(__name__)


class VolumeManager:
    """
    Creates a stack's named volumes, treating "already exists" as success.
    """
    def __init__(self, platform):
        """
        :param platform: The container platform client.
        """
        self.platform = platform

    def ensure(self, stack: str, key: str, spec: VolumeSpec) -> bool:
        """
        Creates the volume ``{stack}_{key}`` unless it already exists.

        :return: True if this call created the volume, False if it existed.
        :raises PlatformError: For any failure other than a conflict.
        """
        name = resource_namer.volume_name(stack, key)
        try:
            self.platform.create_volume(
                name,
                driver=spec.driver,
                labels=resource_namer.labels(stack, "volume", key),
                driver_opts=dict(spec.driver_opts),
            )
        except PlatformError as e:
            if e.is_conflict:
                logger.info("Volume %s already exists", name)
                return False
            raise
        logger.info("Created volume %s", name)
        return True

    @staticmethod
    def resolve_source(stack: str, mount: VolumeMount) -> str:
        """
        Resolves the source of a volume entry.
        Host paths (starting with '/' or '.') are used as-is; anything else
        names a stack volume and gets the stack prefix.

        :param stack: The stack name.
        :param mount: The parsed volume entry.
        :return: The source as the platform should see it.
        """
        return resource_namer.volume_source(stack, mount.source)

    @classmethod
    def bind_string(cls, stack: str, mount: VolumeMount) -> str:
        """``source:target:mode`` as passed to the platform."""
        return f"{cls.resolve_source(stack, mount)}:{mount.target}:{mount.mode}"
