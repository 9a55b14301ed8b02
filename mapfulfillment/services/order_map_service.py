# mapfulfillment/services/order_map_service.py
"""
Order fulfillment service generating the print map of a line item.

Resolves the map configuration, renders it within a hard deadline, writes
the audit record and moves the persisted configuration to its final
lifecycle state.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from mapfulfillment.core.config import config
from mapfulfillment.core.exceptions import GenerationTimeout, RenderFailed
from mapfulfillment.core.setup_logging import log_context, setup_default_logging
from mapfulfillment.managers.config_store import ConfigurationStore, FileConfigurationStore
from mapfulfillment.managers.record_store import AuditSink, JsonRecordSink
from mapfulfillment.managers.session_store import SessionStore, UnavailableSessionStore
from mapfulfillment.models.models import (
    FulfillmentResult,
    GenerationRecord,
    LineItem,
    MapConfiguration,
    Order,
    RecordConfiguration,
    RecordCustomer,
)
from mapfulfillment.resolvers import ConfigurationResolver
from mapfulfillment.services.renderer import Renderer
from mapfulfillment.services.strava_service import StravaService


class GenerationPhase(str, Enum):
    RESOLVING = "resolving"
    RENDERING = "rendering"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class GenerationState:
    """Progress of one generation, readable after a timeout."""

    phase: GenerationPhase = GenerationPhase.RESOLVING
    map_config: Optional[MapConfiguration] = None
    warnings: List[str] = field(default_factory=list)


class OrderMapService:
    """
    Generates the print map of order line items.

    Args:
        resolver: Configuration resolution chain
        renderer: High-resolution map renderer
        config_store: Store owning the persisted configuration lifecycle
        audit_sink: Destination of generation records (optional)
        timeout_seconds: Deadline of resolution plus rendering
        logger: Logger instance
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        renderer: Renderer,
        config_store: ConfigurationStore,
        audit_sink: Optional[AuditSink] = None,
        timeout_seconds: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.resolver = resolver
        self.renderer = renderer
        self.config_store = config_store
        self.audit_sink = audit_sink
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else config.GENERATION_TIMEOUT_SECONDS
        )
        self.logger = logger or setup_default_logging()

    async def fulfill_order_line_item(
        self, order: Order, line_item: LineItem
    ) -> FulfillmentResult:
        """
        Generate the map of a line item.

        Resolution and rendering share one deadline. When it expires the
        in-flight work is cancelled before the failure is recorded, so a late
        render can never move the configuration afterwards.

        Args:
            order: Completed order
            line_item: Line item to fulfill

        Returns:
            FulfillmentResult: Map path, configuration provenance and warnings

        Raises:
            ConfigurationUnresolved: If no strategy produced a valid configuration
            RenderFailed: If rendering failed or produced no file
            GenerationTimeout: If the deadline expired
        """
        state = GenerationState()
        context = log_context(order, line_item)
        loop = asyncio.get_running_loop()
        started = loop.time()

        self.logger.info(
            f"Generating map for order {order.name or order.id}, line item {line_item.id}",
            extra=context,
        )

        try:
            map_path = await asyncio.wait_for(
                self._resolve_and_render(order, line_item, state), self.timeout_seconds
            )
        except asyncio.TimeoutError:
            error = GenerationTimeout(
                f"Map generation timeout exceeded ({self.timeout_seconds}s) "
                f"for order {order.name or order.id}",
                timeout_seconds=self.timeout_seconds,
            )
            self.logger.error(
                f"{error} during {state.phase.value} after {loop.time() - started:.1f}s",
                extra=context,
            )
            await self._fail(state, error, context)
            raise error from None
        except Exception as e:
            self.logger.error(
                f"Map generation failed during {state.phase.value}: {type(e).__name__}: {e}",
                extra=context,
            )
            await self._fail(state, e, context)
            raise

        state.phase = GenerationPhase.SUCCEEDED
        map_config = state.map_config
        context["config_id"] = map_config.config_id

        await self._store_generation_record(order, line_item, map_config, map_path, state)
        await self._complete_configuration(map_config, state, context)

        self.logger.info(
            f"Map generated for line item {line_item.id} in {loop.time() - started:.1f}s: "
            f"{map_path}",
            extra=context,
        )
        return FulfillmentResult(
            map_path=map_path,
            config_source=map_config.source,
            config_id=map_config.config_id,
            order_id=order.id,
            line_item_id=line_item.id,
            warnings=state.warnings,
        )

    async def _resolve_and_render(
        self, order: Order, line_item: LineItem, state: GenerationState
    ) -> str:
        state.phase = GenerationPhase.RESOLVING
        state.map_config = await self.resolver.resolve(order, line_item)

        state.phase = GenerationPhase.RENDERING
        return await self._render(state.map_config)

    async def _render(self, map_config: MapConfiguration) -> str:
        """
        Render a configuration and check the output file.

        Raises:
            RenderFailed: If the renderer raised, returned nothing or the file is missing
        """
        self.logger.info(
            f"Rendering {map_config.width}x{map_config.height} map "
            f"(source={map_config.source.value}, style={map_config.style})"
        )
        try:
            map_path = await self.renderer.render(map_config)
        except RenderFailed:
            raise
        except Exception as e:
            raise RenderFailed(f"High-resolution map generation failed: {e}") from e

        if not map_path:
            raise RenderFailed("Map renderer returned no file path")

        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, os.path.exists, map_path):
            raise RenderFailed(f"Generated map file not found at path: {map_path}")
        return str(map_path)

    async def _store_generation_record(
        self,
        order: Order,
        line_item: LineItem,
        map_config: MapConfiguration,
        map_path: str,
        state: GenerationState,
    ) -> None:
        if self.audit_sink is None:
            return

        customer = order.customer
        record = GenerationRecord(
            order_id=order.id,
            order_name=order.name,
            line_item_id=line_item.id,
            config_source=map_config.source,
            config_id=map_config.config_id,
            map_path=map_path,
            customer=RecordCustomer(
                id=customer.id if customer else None,
                email=customer.email if customer else None,
            ),
            configuration=RecordConfiguration(
                format=map_config.format,
                orientation=map_config.orientation,
                dpi=map_config.dpi,
                style=map_config.style,
                width=map_config.width,
                height=map_config.height,
            ),
        )
        try:
            await self.audit_sink.write_record(record)
        except Exception as e:
            message = f"Failed to store generation record: {e}"
            self.logger.warning(message, extra=log_context(order))
            state.warnings.append(message)

    async def _complete_configuration(
        self, map_config: MapConfiguration, state: GenerationState, context: dict
    ) -> None:
        if not map_config.is_persisted:
            self.logger.debug(
                f"Source {map_config.source.value} has no persisted configuration to move",
                extra=context,
            )
            return

        try:
            moved = await self.config_store.move_to_processed(map_config.config_id)
        except Exception as e:
            moved = False
            self.logger.warning(f"move_to_processed raised: {e}", extra=context)
        if not moved:
            message = f"Configuration {map_config.config_id} could not be moved to processed"
            self.logger.warning(message, extra=context)
            state.warnings.append(message)

    async def _fail(self, state: GenerationState, error: BaseException, context: dict) -> None:
        """Move the configuration to failed (once) and attach warnings to the error."""
        state.phase = GenerationPhase.FAILED
        config_id = state.map_config.config_id if state.map_config else None
        if config_id:
            try:
                moved = await self.config_store.move_to_failed(config_id, error)
            except Exception as e:
                moved = False
                self.logger.warning(f"move_to_failed raised: {e}", extra=context)
            if not moved:
                message = f"Configuration {config_id} could not be moved to failed"
                self.logger.warning(message, extra=context)
                state.warnings.append(message)

        if hasattr(error, "warnings"):
            error.warnings.extend(state.warnings)


def create_order_map_service(
    renderer: Renderer,
    session_store: Optional[SessionStore] = None,
    activity_api: Optional[StravaService] = None,
    config_store: Optional[ConfigurationStore] = None,
    audit_sink: Optional[AuditSink] = None,
    logger: Optional[logging.Logger] = None,
) -> OrderMapService:
    """
    Wire an OrderMapService with the default collaborators.

    Args:
        renderer: High-resolution map renderer
        session_store: Preview store (defaults to an unavailable store)
        activity_api: Strava client (defaults to one built from configuration)
        config_store: Configuration store (defaults to the file store)
        audit_sink: Record sink (defaults to JSON files)
        logger: Logger instance
    """
    logger = logger or setup_default_logging()
    config_store = config_store or FileConfigurationStore(logger=logger)
    resolver = ConfigurationResolver.create_default(
        config_store,
        session_store or UnavailableSessionStore(logger=logger),
        activity_api or StravaService(logger=logger),
        default_style=config.DEFAULT_MAP_STYLE,
        logger=logger,
    )
    return OrderMapService(
        resolver,
        renderer,
        config_store,
        audit_sink=audit_sink or JsonRecordSink(logger=logger),
        logger=logger,
    )
