# mapfulfillment/resolvers/base_resolver.py
"""
Base configuration resolver defining the interface for all resolution strategies.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from mapfulfillment.core.setup_logging import log_context, setup_default_logging
from mapfulfillment.models.models import ConfigSource, LineItemProperty, Order
from mapfulfillment.services.config_validator import validate_map_config

# Keys a candidate must not inherit from the data it was read from
PROVENANCE_KEYS = ("source", "configId")


class BaseConfigResolver(ABC):
    """
    Abstract base class for configuration resolution strategies.

    ``resolve`` never raises: errors raised by ``_resolve`` are logged and
    turned into ``None`` so the orchestrator can move on to the next strategy.
    """

    # Must be defined by subclasses
    name: str = "base"
    source: ConfigSource = ConfigSource.ORDER_PROPERTIES

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or setup_default_logging()

    @abstractmethod
    async def _resolve(
        self, properties: List[LineItemProperty], order: Order
    ) -> Optional[Dict[str, Any]]:
        """
        Produce a candidate configuration.

        Args:
            properties: Line item properties
            order: Order being fulfilled

        Returns:
            Candidate configuration dict, or None when this strategy has nothing
        """

    async def resolve(
        self, properties: List[LineItemProperty], order: Order
    ) -> Optional[Dict[str, Any]]:
        try:
            return await self._resolve(properties, order)
        except Exception as e:
            self.logger.warning(
                f"Strategy {self.name} failed for order {order.id}: {type(e).__name__}: {e}",
                extra=log_context(order, strategy=self.name),
            )
            return None

    def is_valid(self, candidate: Any) -> bool:
        return validate_map_config(candidate, self.logger).valid

    @staticmethod
    def strip_provenance(candidate: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in candidate.items() if k not in PROVENANCE_KEYS}

    @classmethod
    def get_description(cls) -> str:
        return f"Base resolver for {cls.source.value} configurations"
