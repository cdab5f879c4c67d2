"""
Isolated container network for one stack instance.
"""

import logging
from typing import Optional

from .models import unique_name
from .runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class Network:
    """A process-unique bridge network joining the stack's containers."""

    def __init__(self, runtime: ContainerRuntime, name: Optional[str] = None):
        self.runtime = runtime
        self.name = name or unique_name("lakestack")
        self.created = False

    async def create(self) -> None:
        """Create the network; failures propagate and are fatal to the stack."""
        logger.info(f"Creating network: {self.name}")
        await self.runtime.create_network(self.name)
        self.created = True
        logger.info(f"Successfully created network: {self.name}")

    async def dispose(self) -> None:
        """Remove the network. Idempotent; errors are logged, never raised."""
        if not self.created:
            return

        try:
            await self.runtime.remove_network(self.name)
        except Exception as e:
            logger.warning(f"Failed to remove network {self.name}: {e}")
            return

        self.created = False
        logger.info(f"Network disposed: {self.name}")
