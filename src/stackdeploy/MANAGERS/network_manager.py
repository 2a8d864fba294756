"""
Network provisioning for stacks.
"""
import logging

from ..exceptions import PlatformError
from ..MODELS.definition import NetworkSpec
from ..UTILS import resource_namer

logger = logging.getLogger(__name__)


class NetworkManager:
    """
    Creates a stack's networks, treating "already exists" as success.
    """
    def __init__(self, platform):
        """
        :param platform: The container platform client.
        """
        self.platform = platform

    def ensure(self, stack: str, key: str, spec: NetworkSpec) -> bool:
        """
        Creates the network ``{stack}_{key}`` unless it already exists.

        :return: True if this call created the network, False if it existed.
        :raises PlatformError: For any failure other than a conflict.
        """
        name = resource_namer.network_name(stack, key)
        try:
            self.platform.create_network(
                name,
                driver=spec.driver,
                labels=resource_namer.labels(stack, "network", key),
                options=dict(spec.driver_opts),
            )
        except PlatformError as e:
            if e.is_conflict:
                logger.info("Network %s already exists", name)
                return False
            raise
        logger.info("Created network %s", name)
        return True
