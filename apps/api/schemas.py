"""
Pydantic schemas for the Instagram metrics API.

Request bodies use the camelCase field names the dashboard sends.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class KPIRequest(BaseModel):
    """Request model for the KPI endpoint."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "startDate": "2025-03-01T00:00:00.000Z",
                "endDate": "2025-03-31T23:59:59.999Z",
                "forceRefresh": False,
            }
        },
    )

    start_date: str = Field(..., alias="startDate", min_length=1, description="ISO8601 start of the period")
    end_date: str = Field(..., alias="endDate", min_length=1, description="ISO8601 end of the period")
    account_id: Optional[str] = Field(None, alias="accountId", description="Instagram Business Account ID")
    force_refresh: bool = Field(False, alias="forceRefresh", description="Bypass the response cache")


class KPIEnvelope(BaseModel):
    kpis: Dict[str, Any]
    cache_status: Literal["fresh", "cached", "fallback"] = Field(..., alias="cacheStatus")
    note: str
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)


class KPIResponse(BaseModel):
    """Response model for the KPI endpoint."""

    instagram: KPIEnvelope


class PostsResponse(BaseModel):
    success: bool = True
    posts: List[Dict[str, Any]]
    count: int
    generated_at: str = Field(..., alias="generatedAt")

    model_config = ConfigDict(populate_by_name=True)


class CacheClearRequest(BaseModel):
    prefix: Optional[str] = Field(None, description="Only remove keys starting with this prefix")


class CacheClearResponse(BaseModel):
    removed: int


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")


class VersionResponse(BaseModel):
    """Response model for version endpoint."""

    version: str = Field(..., description="API version")


class MonthlyDataRequest(BaseModel):
    """Request model for the monthly page + Instagram data endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    page_id: Optional[str] = Field(None, alias="pageId", description="Facebook Page ID (defaults to FACEBOOK_PAGE_ID)")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    force_refresh: bool = Field(False, alias="forceRefresh")


class SampleSummaryResponse(BaseModel):
    month: str
    data: Dict[str, Any]


class AllMonthsResponse(BaseModel):
    months: List[str]
    data: Dict[str, Dict[str, Any]]
