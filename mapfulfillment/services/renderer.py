# mapfulfillment/services/renderer.py
"""
Interface of the high-resolution map renderer.

Rendering is done by a headless browser outside this package. The pipeline
only awaits ``render`` within its overall deadline and checks that the
returned file exists.
"""

from abc import ABC, abstractmethod
from typing import Optional

from mapfulfillment.models.models import MapConfiguration


class Renderer(ABC):
    """Turns a validated map configuration into a print file."""

    @abstractmethod
    async def render(self, map_config: MapConfiguration) -> Optional[str]:
        """
        Render the configuration.

        Args:
            map_config: Validated configuration

        Returns:
            Path of the generated file (None or empty means no output)
        """
