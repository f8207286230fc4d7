"""
Records API Schemas - Request and response models for catalog queries
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SortBy = Literal["relevance", "intensity", "year", "duration", "date"]


class RecordSearchParams(BaseModel):
    """
    Query parameters for record search.

    Range parameters take "min-max", "min-", "-max" or a single number.
    """

    q: Optional[str] = Field(None, description="Free text matched against title, context, source and tags")
    intensity_range: Optional[str] = Field(None, description="Intensity range (1-10), e.g. '5-10'")
    duration_range: Optional[str] = Field(None, description="Duration range in seconds, e.g. '0.5-3'")
    years: Optional[str] = Field(None, description="Year range, e.g. '2019-2021'")
    year: Optional[str] = Field(None, description="Exact year")
    breed: Optional[str] = Field(None, description="Breed (case-insensitive substring)")
    category: Optional[str] = Field(None, description="Audio category")
    source_type: Optional[str] = Field(None, description="Source type")
    meme_status: Optional[str] = Field(None, description="Meme status")
    note: Optional[str] = Field(None, description="Primary musical note (case-insensitive exact)")
    tags: Optional[str] = Field(None, description="Comma-separated tags; any must match")
    exclude_tags: Optional[str] = Field(None, description="Comma-separated tags to exclude")
    has_video: Optional[str] = Field(None, description="Only records with (true) or without (false) video")
    page: int = Field(default=1, description="Page number (clamped to >= 1)")
    limit: int = Field(default=20, description="Page size (clamped to 1..100)")
    sort_by: SortBy = Field(default="relevance", description="Sort order")

    def filter_params(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"page", "limit", "sort_by"})


class CatalogRecord(BaseModel):
    """A catalog record. Only `id` is guaranteed; other attributes pass through."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Stable record key")
    title: Optional[str] = None
    year: Optional[int] = None
    tags: Optional[List[str]] = None


class SearchResponse(BaseModel):
    page: int
    limit: int
    total: int
    items: List[CatalogRecord]
    backend: str = Field(..., description="Backend that answered: mongodb or static")


class RandomResponse(BaseModel):
    items: List[CatalogRecord]
    backend: str


class BreedsResponse(BaseModel):
    breeds: List[str]


class TagCount(BaseModel):
    tag: str
    count: int


class YearCount(BaseModel):
    year: int
    count: int


class TagStatsResponse(BaseModel):
    top_tags: List[TagCount]


class YearStatsResponse(BaseModel):
    by_year: List[YearCount]
