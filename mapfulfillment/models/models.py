# mapfulfillment/models/models.py
"""
Data models for the map fulfillment pipeline.
Defines Pydantic models for orders, resolved map configurations and audit records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mapfulfillment.utils.geometry import PRINT_DIMENSIONS

DEFAULT_ROUTE_COLOR = "#fc5200"
DEFAULT_ROUTE_WIDTH = 4
PRINT_DPI = 300
MIN_ROUTE_POINTS = 2


class ConfigSource(str, Enum):
    """Provenance of a resolved map configuration."""

    ORDER_PROPERTIES = "order_properties"
    JSON_FILE = "json_file"
    JSON_FILE_RECONSTRUCTED = "json_file_reconstructed"
    STRAVA_FROM_STORED_DATA = "strava_from_stored_data"
    STRAVA_API_RECONSTRUCTION = "strava_api_reconstruction"
    SESSION_STORAGE = "session_storage"
    BASE64_LEGACY = "base64_legacy"


# Sources backed by a persisted configuration artifact (lifecycle managed)
PERSISTED_SOURCES = frozenset(
    {
        ConfigSource.JSON_FILE,
        ConfigSource.JSON_FILE_RECONSTRUCTED,
        ConfigSource.STRAVA_FROM_STORED_DATA,
    }
)


class LineItemProperty(BaseModel):
    """A single ``{name, value}`` custom property of a Shopify line item."""

    name: str
    value: Any = None


class LineItem(BaseModel):
    """
    Order line item carrying the poster customization properties.

    Attributes:
        id: Shopify line item identifier
        properties: Custom properties set by the storefront (Configuration ID, Activity ID...)
    """

    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    properties: List[LineItemProperty] = Field(default_factory=list)


class Customer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    email: Optional[str] = None


class Order(BaseModel):
    """
    Completed Shopify order, restricted to the fields the pipeline reads.

    Attributes:
        id: Shopify order identifier
        name: Human readable order name (e.g. "#1001")
        customer: Ordering customer, if known
    """

    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    name: Optional[str] = None
    customer: Optional[Customer] = None


def get_property(properties: List[LineItemProperty], name: str) -> Optional[str]:
    """
    Return the value of the first line item property called ``name``.

    Empty values are treated as absent.
    """
    for prop in properties or []:
        if prop.name == name:
            if prop.value is None:
                return None
            value = str(prop.value).strip()
            return value or None
    return None


class Bounds(BaseModel):
    north: float
    south: float
    east: float
    west: float

    @model_validator(mode="after")
    def validate_latitude_order(self):
        if self.south > self.north:
            raise ValueError(f"bounds south ({self.south}) is greater than north ({self.north})")
        return self


class Route(BaseModel):
    """Route geometry in GeoJSON axis order plus its styling."""

    coordinates: List[List[float]]
    color: str = DEFAULT_ROUTE_COLOR
    width: float = DEFAULT_ROUTE_WIDTH

    @field_validator("coordinates")
    @classmethod
    def validate_coords(cls, coords: List[List[float]]):
        if len(coords) < MIN_ROUTE_POINTS:
            raise ValueError(f"route must contain at least {MIN_ROUTE_POINTS} coordinates")
        for coord in coords:
            if len(coord) < 2:
                raise ValueError(f"coordinate must be a [lng, lat] pair: {coord}")
        return coords


class Markers(BaseModel):
    start: List[float]
    end: List[float]


class MapConfiguration(BaseModel):
    """
    Validated map rendering configuration for one order line item.

    Instances are frozen: the provenance tag and every geometry field are
    fixed once the orchestrator has accepted the configuration.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    format: Optional[str] = None
    orientation: Optional[str] = None
    dpi: int = PRINT_DPI
    center: Tuple[float, float]
    bounds: Bounds
    style: str = Field(min_length=1)
    route: Route
    markers: Optional[Markers] = None
    source: Optional[ConfigSource] = None
    config_id: Optional[str] = Field(None, alias="configId")

    @field_validator("center")
    @classmethod
    def validate_center(cls, center: Tuple[float, float]):
        lng, lat = center
        if not (-180.0 <= lng <= 180.0):
            raise ValueError(f"center longitude out of range [-180,180]: {lng}")
        if not (-90.0 <= lat <= 90.0):
            raise ValueError(f"center latitude out of range [-90,90]: {lat}")
        return center

    @model_validator(mode="after")
    def validate_print_dimensions(self):
        if self.format is None or self.orientation is None:
            return self
        expected = PRINT_DIMENSIONS.get(self.format, {}).get(self.orientation)
        if expected is None:
            return self
        if (self.width, self.height) != (expected["width"], expected["height"]):
            raise ValueError(
                f"dimensions {self.width}x{self.height} do not match {self.format} "
                f"{self.orientation} ({expected['width']}x{expected['height']})"
            )
        return self

    @property
    def is_persisted(self) -> bool:
        """True when the configuration comes from a persisted artifact with a known id."""
        return self.source in PERSISTED_SOURCES and bool(self.config_id)


class ValidationResult(BaseModel):
    """Outcome of validating a candidate configuration."""

    valid: bool
    missing: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RecordCustomer(BaseModel):
    id: Optional[Union[int, str]] = None
    email: Optional[str] = None


class RecordConfiguration(BaseModel):
    format: Optional[str] = None
    orientation: Optional[str] = None
    dpi: Optional[int] = None
    style: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class GenerationRecord(BaseModel):
    """
    Write-once audit row for a generated map, keyed by (order_id, line_item_id).
    """

    model_config = ConfigDict(populate_by_name=True)

    order_id: Union[int, str] = Field(..., alias="orderId")
    order_name: Optional[str] = Field(None, alias="orderName")
    line_item_id: Union[int, str] = Field(..., alias="lineItemId")
    config_source: Optional[ConfigSource] = Field(None, alias="configSource")
    config_id: Optional[str] = Field(None, alias="configId")
    map_path: str = Field(..., alias="mapPath")
    customer: RecordCustomer = Field(default_factory=RecordCustomer)
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="generatedAt"
    )
    configuration: RecordConfiguration = Field(default_factory=RecordConfiguration)


class FulfillmentResult(BaseModel):
    """
    Result of fulfilling one order line item.

    Attributes:
        map_path: Path of the rendered print file
        config_source: Provenance of the configuration used
        config_id: Persisted configuration id, if any
        order_id: Shopify order id
        line_item_id: Shopify line item id
        warnings: Non-fatal failures (audit record, lifecycle transition)
    """

    model_config = ConfigDict(populate_by_name=True)

    map_path: str = Field(..., alias="mapPath")
    config_source: ConfigSource = Field(..., alias="configSource")
    config_id: Optional[str] = Field(None, alias="configId")
    order_id: Union[int, str] = Field(..., alias="orderId")
    line_item_id: Union[int, str] = Field(..., alias="lineItemId")
    warnings: List[str] = Field(default_factory=list)
