"""API routers for the chart calculation API."""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends

from aspects import ASPECT_DEFINITIONS, DECLINATION_ASPECTS
from cache import ResultCache
from charts import BirthData, Chart, ChartCalculators, build_calculators
from ephemeris import HouseSystem, create_adapter
from models import (
    BirthDataModel,
    CalculationTypeEnum,
    ChartRequest,
    ChartResponse,
    NatalChartResponse,
    TransitChartResponse,
    CompositeChartResponse,
    ConfigHouseSystemsResponse,
    ConfigAspectsResponse,
    AspectDefinitionResponse,
    HouseSystemInfo,
)
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

RESPONSE_MODELS = {
    'natal': NatalChartResponse,
    'transits': TransitChartResponse,
    'composite': CompositeChartResponse,
}


# Dependencies
@lru_cache
def get_calculators() -> ChartCalculators:
    """Process-wide calculators sharing one adapter and one cache."""
    settings = get_settings()
    cache = ResultCache(maxsize=settings.cache_maxsize)
    return build_calculators(settings, create_adapter(settings), cache.namespace('charts'))


# Helper Functions
def _to_birth_data(model: BirthDataModel) -> BirthData:
    """Convert request model to BirthData instance."""
    return BirthData(
        date=model.date_of_birth,
        time=model.time_of_birth,
        is_time_unknown=model.is_time_unknown,
        latitude=model.latitude,
        longitude=model.longitude,
        timezone=model.timezone,
        location_name=model.location_name,
    )


def _to_response(chart: Chart):
    return RESPONSE_MODELS[chart.calculation_type].model_validate(chart)


def _calculate(request: ChartRequest, calculators: ChartCalculators, settings: Settings) -> Chart:
    house_system = request.house_system or settings.default_house_system
    options = dict(
        with_aspects=request.with_aspects,
        aspect_types=request.aspects_to_include,
        orb_overrides=request.custom_orbs,
    )

    if request.calculation_type == CalculationTypeEnum.NATAL:
        return calculators.natal.compute_natal(_to_birth_data(request.birth_data), house_system, **options)

    if request.calculation_type == CalculationTypeEnum.COMPOSITE:
        return calculators.composite.compute_composite(
            _to_birth_data(request.birth_data),
            _to_birth_data(request.birth_data_profile_b),
            house_system,
            **options,
        )

    natal_chart = None
    if request.birth_data is not None and request.with_aspects:
        # Transits have no houses of their own; the natal side only needs points.
        natal_chart = calculators.natal.compute_natal(
            _to_birth_data(request.birth_data), HouseSystem.WHOLE_SIGN, with_aspects=False
        )
    return calculators.transit.compute_transits(request.target_date_utc, natal_chart, **options)


# Configuration Endpoints
@router.get(
    "/config/house-systems",
    response_model=ConfigHouseSystemsResponse,
    summary="List Available House Systems",
    description="""
    Get every house system code accepted by the API.

    Charts place points in houses only with Whole Sign; other systems are
    listed for completeness and are rejected by the chart endpoint.
    """
)
async def get_house_systems(settings: Settings = Depends(get_settings)):
    """List all available house systems."""
    return ConfigHouseSystemsResponse(
        default=HouseSystem.parse(settings.default_house_system).value,
        house_systems=[
            HouseSystemInfo(
                code=system.value,
                name=system.name.replace('_', ' ').title(),
                house_assignment=system == HouseSystem.WHOLE_SIGN,
            )
            for system in HouseSystem
        ]
    )


@router.get(
    "/config/aspects",
    response_model=ConfigAspectsResponse,
    summary="List Aspect Definitions",
    description="""
    Get definitions of all longitude aspects including:
    - Aspect type and symbol
    - Exact angle and base orb
    - Importance weight (power)
    - Categorized by major and minor aspects
    """
)
async def get_aspects():
    """List all aspect definitions with orb information."""
    definitions = [d for t, d in ASPECT_DEFINITIONS.items() if t not in DECLINATION_ASPECTS]
    return ConfigAspectsResponse(
        major_aspects=[AspectDefinitionResponse.model_validate(d) for d in definitions if d.major],
        minor_aspects=[AspectDefinitionResponse.model_validate(d) for d in definitions if not d.major],
    )


# Chart Endpoints
@router.post(
    "/charts/calculate",
    response_model=ChartResponse,
    summary="Calculate Chart",
    description="""
    Calculate a natal, transit or composite chart.

    - natal: points in signs and Whole Sign houses, Ascendant, Midheaven, aspects
    - transits: sky positions for the requested hour (UTC), with aspects to
      the natal chart when birth_data is given
    - composite: midpoint chart of birth_data and birth_data_profile_b

    Results are cached; transit requests within the same hour share a result.
    """,
    responses={
        200: {"description": "Successful calculation"},
        422: {"description": "Validation error - invalid input parameters"},
        500: {"description": "Calculation error - ephemeris internal error"}
    }
)
def calculate_chart(request: ChartRequest,
                    calculators: ChartCalculators = Depends(get_calculators),
                    settings: Settings = Depends(get_settings)):
    """Calculate a single chart."""
    logger.debug("calculate %s chart", request.calculation_type.value)
    chart = _calculate(request, calculators, settings)
    return _to_response(chart)
