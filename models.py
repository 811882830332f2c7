"""Pydantic models for chart API request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

import pytz
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ConfigDict

from aspects import AspectType
from ephemeris import HouseSystem


# Enums
class CalculationTypeEnum(str, Enum):
    """Kind of chart to calculate."""
    NATAL = "natal"
    TRANSITS = "transits"
    COMPOSITE = "composite"


# Request Models
class BirthDataModel(BaseModel):
    """Birth date, local time and place of one person."""

    date_of_birth: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="Birth date as YYYY-MM-DD",
        examples=["1990-06-15"]
    )
    time_of_birth: Optional[str] = Field(
        None,
        pattern=r"^\d{2}:\d{2}(:\d{2})?$",
        description="Local birth time as HH:MM or HH:MM:SS. Noon is used when missing."
    )
    is_time_unknown: bool = Field(
        default=False,
        description="Birth time is unknown; noon is used and the chart is flagged"
    )
    latitude: float = Field(
        ...,
        ge=-90,
        le=90,
        description="Latitude in decimal degrees (-90 to 90)"
    )
    longitude: float = Field(
        ...,
        ge=-180,
        le=180,
        description="Longitude in decimal degrees (-180 to 180)"
    )
    timezone: str = Field(
        ...,
        description="IANA timezone name (e.g., 'America/New_York')"
    )
    location_name: Optional[str] = Field(
        None,
        description="Human-readable place name"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone string."""
        try:
            pytz.timezone(v)
            return v
        except pytz.exceptions.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {v}")


class ChartRequest(BaseModel):
    """Request model for chart calculation."""

    calculation_type: CalculationTypeEnum = Field(
        ...,
        description="natal, transits or composite"
    )
    birth_data: Optional[BirthDataModel] = Field(
        None,
        description="Birth data. Required for natal and composite; for transits it enables transit-to-natal aspects."
    )
    birth_data_profile_b: Optional[BirthDataModel] = Field(
        None,
        description="Second person's birth data (composite only)"
    )
    target_date_utc: Optional[datetime] = Field(
        None,
        description="Transit instant (UTC). Defaults to now; floored to the hour."
    )
    house_system: Optional[str] = Field(
        None,
        description="House system code or name. Defaults to the configured system (Whole Sign)."
    )
    with_aspects: bool = Field(
        default=True,
        description="Include aspects in the chart"
    )
    aspects_to_include: Optional[list[AspectType]] = Field(
        None,
        description="Restrict detection to these aspect types"
    )
    custom_orbs: Optional[dict[AspectType, float]] = Field(
        None,
        description="Base orb overrides per aspect type, in degrees"
    )

    @model_validator(mode='after')
    def validate_birth_data(self):
        """Natal and composite charts need birth data; composite needs two."""
        if self.calculation_type != CalculationTypeEnum.TRANSITS and self.birth_data is None:
            raise ValueError("birth_data is required for natal and composite charts")
        if self.calculation_type == CalculationTypeEnum.COMPOSITE and self.birth_data_profile_b is None:
            raise ValueError("birth_data_profile_b is required for composite charts")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{
                "calculation_type": "natal",
                "birth_data": {
                    "date_of_birth": "1990-06-15",
                    "time_of_birth": "14:30:00",
                    "is_time_unknown": False,
                    "latitude": 40.7128,
                    "longitude": -74.0060,
                    "timezone": "America/New_York"
                },
                "house_system": "W",
                "with_aspects": True
            }]
        }
    )


# Response Models
class PointData(BaseModel):
    """Chart point placed in its sign (and house)."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    sign: str
    sign_glyph: str
    degree: int
    minute: int
    longitude: float
    house: Optional[int] = None
    retrograde: bool
    longitude_speed: float
    dignity: Optional[str] = Field(None, description="dignity, detriment, exaltation, fall or neutral; null for Chiron and the Node")


class HouseCuspData(BaseModel):
    """House cusp."""
    model_config = ConfigDict(from_attributes=True)

    house_number: int
    sign: str
    sign_glyph: str
    start_degree_in_sign: int
    absolute_degree: float


class AngleData(BaseModel):
    """Ascendant or Midheaven."""
    model_config = ConfigDict(from_attributes=True)

    sign: str
    sign_glyph: str
    longitude: float


class AspectData(BaseModel):
    """Aspect between two points."""
    model_config = ConfigDict(from_attributes=True)

    point1: str
    point2: str
    type: AspectType
    angle: float
    orb: float
    max_orb: float
    applying: bool
    exactness: float
    description: str


class NatalChartResponse(BaseModel):
    """Natal chart response."""
    model_config = ConfigDict(from_attributes=True)

    calculation_type: Literal["natal"] = "natal"
    points: list[PointData]
    houses: list[HouseCuspData]
    ascendant: AngleData
    midheaven: AngleData
    time_unknown_applied: bool
    house_system: HouseSystem
    julian_day: float
    approximate: bool
    aspects: Optional[list[AspectData]] = None


class TransitChartResponse(BaseModel):
    """Transit chart response."""
    model_config = ConfigDict(from_attributes=True)

    calculation_type: Literal["transits"] = "transits"
    points: list[PointData]
    date: str
    julian_day: float
    approximate: bool
    aspects: Optional[list[AspectData]] = None


class CompositeChartResponse(BaseModel):
    """Composite chart response."""
    model_config = ConfigDict(from_attributes=True)

    calculation_type: Literal["composite"] = "composite"
    points: list[PointData]
    houses: list[HouseCuspData]
    ascendant: AngleData
    midheaven: AngleData
    house_system: HouseSystem
    approximate: bool
    aspects: Optional[list[AspectData]] = None


ChartResponse = Annotated[
    Union[NatalChartResponse, TransitChartResponse, CompositeChartResponse],
    Field(discriminator="calculation_type"),
]


class HouseSystemInfo(BaseModel):
    """House system code and whether charts can assign houses with it."""
    code: str
    name: str
    house_assignment: bool


class ConfigHouseSystemsResponse(BaseModel):
    """Configuration response for house systems."""
    default: str
    house_systems: list[HouseSystemInfo]


class AspectDefinitionResponse(BaseModel):
    """Aspect definition with orb."""
    model_config = ConfigDict(from_attributes=True)

    type: AspectType
    symbol: str
    angle: float
    orb: float
    harmony: str
    power: int
    major: bool


class ConfigAspectsResponse(BaseModel):
    """Configuration response for aspects."""
    major_aspects: list[AspectDefinitionResponse]
    minor_aspects: list[AspectDefinitionResponse]
