"""
Records Router - Search, sample and browse catalog records
"""

import logging

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_records_service
from api.schemas.records import (
    BreedsResponse,
    CatalogRecord,
    RandomResponse,
    RecordSearchParams,
    SearchResponse,
    TagStatsResponse,
    YearStatsResponse,
)
from api.services.records_service import RecordsService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/records", response_model=SearchResponse)
async def search_records(
    params: RecordSearchParams = Depends(),
    service: RecordsService = Depends(get_records_service),
) -> SearchResponse:
    """
    Search approved records with optional filters, sorting and pagination.

    Malformed ranges or years answer 400 rather than being ignored.
    """
    return SearchResponse(**await service.search(params))


@router.get("/records/random", response_model=RandomResponse)
async def random_records(
    n: int = Query(1, description="Number of records (clamped to 1..50)"),
    params: RecordSearchParams = Depends(),
    service: RecordsService = Depends(get_records_service),
) -> RandomResponse:
    """Distinct random records matching the same filters as /records"""
    return RandomResponse(**await service.random(params, n))


@router.get("/records/breeds", response_model=BreedsResponse)
async def list_breeds(service: RecordsService = Depends(get_records_service)) -> BreedsResponse:
    return BreedsResponse(breeds=await service.breeds())


@router.get("/records/stats/tags", response_model=TagStatsResponse)
async def tag_stats(
    limit: int = Query(20, description="Number of tags (clamped to 1..100)"),
    service: RecordsService = Depends(get_records_service),
) -> TagStatsResponse:
    return TagStatsResponse(top_tags=await service.tag_stats(limit))


@router.get("/records/stats/years", response_model=YearStatsResponse)
async def year_stats(service: RecordsService = Depends(get_records_service)) -> YearStatsResponse:
    return YearStatsResponse(by_year=await service.year_stats())


@router.get("/records/{record_id}", response_model=CatalogRecord)
async def get_record(
    record_id: str,
    service: RecordsService = Depends(get_records_service),
) -> CatalogRecord:
    return CatalogRecord(**await service.get(record_id))
