from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Lead type, request size and location are checked by the pipeline, not here,
# so the HTTP layer reports the same errors as in-process callers.


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ValidateVisualRequest(_Body):
    latitude: float
    longitude: float
    lead_type: str
    property_id: str | None = None
    address: str | None = None
    provider_data: dict[str, Any] = Field(default_factory=dict, alias="zillow_data")


class BatchLeadsRequest(_Body):
    location: str = ""
    lead_type: str | None = Field(default=None, alias="leadType")
    requested_leads: int | None = Field(default=None, alias="requestedLeads")


class BatchLeadsMultipleRequest(_Body):
    location: str = ""
    lead_types: list[str] = Field(default_factory=list, alias="leadTypes")
    requested_leads: int | None = Field(default=None, alias="requestedLeads")


class ErrorBody(BaseModel):
    code: str
    message: str
    statusCode: int
    timestamp: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody


class CacheStatsOut(BaseModel):
    key_count: int
    keys: list[str]
    stats: dict[str, int]


class AnalyzePropertyItem(_Body):
    # raw values; each property is checked on its own so one bad item
    # does not reject the whole list
    property_id: Any = Field(default=None, alias="zpid")
    latitude: Any = None
    longitude: Any = None
    address: Any = None
    provider_data: dict[str, Any] = Field(default_factory=dict, alias="zillow_data")


class AnalyzeRequest(AnalyzePropertyItem):
    properties: list[AnalyzePropertyItem] | None = None


class SearchFiltersIn(_Body):
    min_price: int | None = Field(default=None, ge=0, alias="minPrice")
    max_price: int | None = Field(default=None, ge=0, alias="maxPrice")
    min_bedrooms: int | None = Field(default=None, ge=0, alias="minBedrooms")
    max_bedrooms: int | None = Field(default=None, ge=0, alias="maxBedrooms")


class SearchAndAnalyzeRequest(_Body):
    location: str = ""
    lead_type: str | None = None
    filters: SearchFiltersIn = Field(default_factory=SearchFiltersIn)
    count: int | None = None
