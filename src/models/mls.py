"""MLS feed records as received from the provider (RESO field names)."""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class ExternalMedia(BaseModel):
    """One media item attached to a provider listing."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    media_key: str = Field(..., alias="MediaKey", min_length=1, description="Provider media identifier")
    media_url: Optional[str] = Field(None, alias="MediaURL")
    order: Optional[int] = Field(None, alias="Order", description="Provider display order")
    media_category: Optional[str] = Field(None, alias="MediaCategory", description="Photo, Video, Document, ...")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ExternalMedia":
        return cls.model_validate(record)


class ExternalListing(BaseModel):
    """Provider listing record.

    Only the fields the catalog consumes are typed; the complete record is kept
    verbatim in ``raw`` for audit.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    listing_id: str = Field(..., alias="ListingId", min_length=1, description="Provider listing identifier")
    list_price: Optional[float] = Field(None, alias="ListPrice")
    bedrooms_total: Optional[int] = Field(None, alias="BedroomsTotal")
    bathrooms_total_integer: Optional[int] = Field(None, alias="BathroomsTotalInteger")
    living_area: Optional[float] = Field(None, alias="LivingArea")
    year_built: Optional[int] = Field(None, alias="YearBuilt")
    unparsed_address: Optional[str] = Field(None, alias="UnparsedAddress")
    city: Optional[str] = Field(None, alias="City")
    state_or_province: Optional[str] = Field(None, alias="StateOrProvince")
    postal_code: Optional[str] = Field(None, alias="PostalCode")
    county_or_parish: Optional[str] = Field(None, alias="CountyOrParish")
    property_type: Optional[str] = Field(None, alias="PropertyType")
    standard_status: Optional[str] = Field(None, alias="StandardStatus")
    public_remarks: Optional[str] = Field(None, alias="PublicRemarks")
    latitude: Optional[float] = Field(None, alias="Latitude")
    longitude: Optional[float] = Field(None, alias="Longitude")
    days_on_market: Optional[int] = Field(None, alias="DaysOnMarket")
    original_list_price: Optional[float] = Field(None, alias="OriginalListPrice")
    virtual_tour_url: Optional[str] = Field(None, alias="VirtualTourURLUnbranded")
    list_agent_mls_id: Optional[str] = Field(None, alias="ListAgentMlsId")
    list_office_mls_id: Optional[str] = Field(None, alias="ListOfficeMlsId")
    modification_timestamp: Optional[str] = Field(None, alias="ModificationTimestamp")
    originating_system_name: Optional[str] = Field(None, alias="OriginatingSystemName")
    media: Optional[list[dict[str, Any]]] = Field(None, alias="Media", description="Present only with $expand=Media")

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ExternalListing":
        """Validate a feed record, keeping the untouched payload alongside."""
        listing = cls.model_validate(record)
        listing._raw = dict(record)
        return listing

    @property
    def raw(self) -> dict[str, Any]:
        return self._raw
