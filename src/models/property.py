"""Catalog property models (``properties`` table)."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class CatalogPropertyFields(BaseModel):
    """Provider-sourced columns written by the listing sync."""
    listing_id: str = Field(..., min_length=1, description="Provider listing ID (natural key)")
    title: str = Field(..., description="Display title, defaults to the street address")
    price: float = Field(default=0, ge=0)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    sqft: int = Field(default=0, ge=0)
    year_built: Optional[int] = None
    location: str = Field(default="", description="Address, city, region, postal code")
    property_type: str = Field(default="House", description="House, Condo, Townhouse, Land, Commercial, Multi-Family")
    status: str = Field(default="For Sale", description="For Sale, Pending, Sold, Coming Soon, Off Market")
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    days_on_market: Optional[int] = None
    original_list_price: Optional[float] = None
    virtual_tour_url: Optional[str] = None
    listing_agent_mls_id: Optional[str] = None
    listing_office_mls_id: Optional[str] = None
    modification_timestamp: Optional[str] = None
    originating_system_name: Optional[str] = None
    is_mls_listing: bool = Field(default=True, description="Always true for rows written by the sync")
    mls_status: Optional[str] = Field(None, description="Provider StandardStatus, verbatim")
    mls_raw_data: dict[str, Any] = Field(default_factory=dict, description="Latest raw provider payload")

    def to_record(self) -> dict[str, Any]:
        """Row payload for an update."""
        return self.model_dump(mode="json")

    def to_insert_record(self) -> dict[str, Any]:
        """Row payload for an insert. New provider rows start un-featured."""
        record = self.to_record()
        record["is_featured"] = False
        return record


class PropertyImageFields(BaseModel):
    """Columns written by the media sync (``property_images`` table)."""
    property_id: Optional[str] = Field(None, description="Owning catalog row ID")
    media_key: str = Field(..., min_length=1, description="Provider media ID (natural key)")
    image_url: str = Field(..., min_length=1)
    is_primary: bool = False
    display_order: int = Field(default=0, ge=0)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
