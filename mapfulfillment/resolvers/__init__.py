# mapfulfillment/resolvers/__init__.py
"""
Configuration resolvers package.
Runs the resolution strategies in priority order and returns the first
valid map configuration.
"""

import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from mapfulfillment.core.exceptions import ConfigurationUnresolved
from mapfulfillment.core.setup_logging import log_context, setup_default_logging
from mapfulfillment.models.models import LineItem, MapConfiguration, Order
from mapfulfillment.services.config_reconstructor import NEEDS_EXTERNAL_RECONSTRUCTION
from mapfulfillment.services.config_validator import validate_map_config

from .base_resolver import BaseConfigResolver
from .order_properties_resolver import OrderPropertiesResolver
from .session_storage_resolver import SessionStorageResolver
from .strava_api_resolver import StravaApiResolver

__all__ = [
    "BaseConfigResolver",
    "ConfigurationResolver",
    "OrderPropertiesResolver",
    "SessionStorageResolver",
    "StravaApiResolver",
]


class ConfigurationResolver:
    """
    Ordered chain of resolution strategies.

    The first strategy returning a configuration that passes validation
    wins; later strategies are not invoked. A strategy returning nothing or
    an invalid configuration is recorded and the next one is tried.

    Args:
        resolvers: Strategies in priority order
        logger: Logger instance
    """

    def __init__(
        self, resolvers: List[BaseConfigResolver], logger: Optional[logging.Logger] = None
    ):
        self.resolvers = list(resolvers)
        self.logger = logger or setup_default_logging()

    @classmethod
    def create_default(
        cls,
        config_store,
        session_store,
        activity_api,
        default_style: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "ConfigurationResolver":
        """
        Build the standard chain: order properties, session storage, Strava API.

        Args:
            config_store: Store of persisted configuration documents
            session_store: Store of session previews
            activity_api: Strava client (see StravaService)
            default_style: Style used when a stored document has none
            logger: Logger shared by every strategy
        """
        strava_resolver = StravaApiResolver(activity_api, logger=logger)
        return cls(
            [
                OrderPropertiesResolver(
                    config_store, strava_resolver, default_style=default_style, logger=logger
                ),
                SessionStorageResolver(session_store, logger=logger),
                strava_resolver,
            ],
            logger=logger,
        )

    async def resolve(self, order: Order, line_item: LineItem) -> MapConfiguration:
        """
        Resolve the map configuration of a line item.

        Args:
            order: Order being fulfilled
            line_item: Line item carrying the configuration properties

        Returns:
            MapConfiguration: Validated configuration tagged with its source

        Raises:
            ConfigurationUnresolved: If every strategy failed
        """
        attempts: List[str] = []
        context = log_context(order, line_item)

        for resolver in self.resolvers:
            self.logger.info(
                f"Trying strategy {resolver.name} for line item {line_item.id}",
                extra={**context, "strategy": resolver.name},
            )
            candidate = await resolver.resolve(line_item.properties, order)
            if candidate is None:
                attempts.append(f"{resolver.name}: no configuration")
                continue

            validation = validate_map_config(candidate, self.logger)
            if not validation.valid:
                attempts.append(
                    f"{resolver.name}: invalid (missing={validation.missing}, "
                    f"errors={validation.errors})"
                )
                continue

            tagged = dict(candidate)
            tagged.pop(NEEDS_EXTERNAL_RECONSTRUCTION, None)
            # Provenance set by the strategy itself is kept
            if not tagged.get("source"):
                tagged["source"] = resolver.source.value

            try:
                map_config = MapConfiguration.model_validate(tagged)
            except ValidationError as e:
                attempts.append(f"{resolver.name}: rejected ({e.error_count()} errors)")
                self.logger.warning(
                    f"Strategy {resolver.name} configuration rejected: {e}",
                    extra={**context, "strategy": resolver.name},
                )
                continue

            self.logger.info(
                f"Configuration resolved by {resolver.name} (source={map_config.source.value}, "
                f"configId={map_config.config_id})",
                extra={**context, "strategy": resolver.name, "config_id": map_config.config_id},
            )
            return map_config

        self.logger.error(
            f"All configuration strategies failed for line item {line_item.id}: {attempts}",
            extra=context,
        )
        raise ConfigurationUnresolved(
            "Unable to extract valid map configuration: all extraction strategies failed",
            attempts=attempts,
        )

    def list_resolvers(self) -> Dict[str, str]:
        """
        List the strategies of the chain.

        Returns:
            Dict mapping strategy names to descriptions, in priority order
        """
        return {resolver.name: resolver.get_description() for resolver in self.resolvers}
