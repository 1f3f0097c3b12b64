"""Field mapping - translate MLS feed records into catalog rows.

Pure functions: no I/O. Unknown provider vocabulary degrades to the safest
default instead of failing the record.
"""

from typing import Any, Optional

from src.models.mls import ExternalListing, ExternalMedia
from src.models.property import CatalogPropertyFields, PropertyImageFields

DEFAULT_PROPERTY_TYPE = "House"
DEFAULT_STATUS = "For Sale"
DEFAULT_SOURCE_SYSTEM = "Stellar MLS"

PROPERTY_TYPE_MAP = {
    "Residential": "House",
    "Single Family Residence": "House",
    "Condominium": "Condo",
    "Condo": "Condo",
    "Townhouse": "Townhouse",
    "Land": "Land",
    "Commercial": "Commercial",
    "Multi Family": "Multi-Family",
    "Manufactured Home": "House",
}

STATUS_MAP = {
    "Active": "For Sale",
    "Active Under Contract": "Pending",
    "Pending": "Pending",
    "Closed": "Sold",
    "Sold": "Sold",
    "Coming Soon": "Coming Soon",
    "Withdrawn": "Off Market",
    "Expired": "Off Market",
    "Canceled": "Off Market",
}

PHOTO_CATEGORY_MARKERS = ("photo", "image")

TEST_ADDRESS_MARKERS = ("test",)
TEST_REMARKS_MARKERS = ("test listing", "do not show")


def map_property_type(mls_type: Optional[str]) -> str:
    """Map a provider PropertyType to the catalog vocabulary."""
    if not mls_type:
        return DEFAULT_PROPERTY_TYPE
    return PROPERTY_TYPE_MAP.get(mls_type, DEFAULT_PROPERTY_TYPE)


def map_status(mls_status: Optional[str]) -> str:
    """Map a provider StandardStatus to the catalog vocabulary."""
    if not mls_status:
        return DEFAULT_STATUS
    return STATUS_MAP.get(mls_status, DEFAULT_STATUS)


def build_title(listing: ExternalListing) -> str:
    if listing.unparsed_address:
        return listing.unparsed_address
    return f"{listing.city or ''}, {listing.state_or_province or ''}"


def build_location(listing: ExternalListing) -> str:
    parts = [
        listing.unparsed_address,
        listing.city,
        listing.state_or_province,
        listing.postal_code,
    ]
    return ", ".join(part for part in parts if part)


def map_listing(
    listing: ExternalListing,
    default_source_system: str = DEFAULT_SOURCE_SYSTEM,
) -> CatalogPropertyFields:
    """Translate one provider listing into catalog property fields."""
    return CatalogPropertyFields(
        listing_id=listing.listing_id,
        title=build_title(listing),
        price=listing.list_price or 0,
        bedrooms=listing.bedrooms_total or 0,
        bathrooms=listing.bathrooms_total_integer or 0,
        sqft=int(round(listing.living_area or 0)),
        year_built=listing.year_built,
        location=build_location(listing),
        property_type=map_property_type(listing.property_type),
        status=map_status(listing.standard_status),
        description=listing.public_remarks,
        latitude=listing.latitude,
        longitude=listing.longitude,
        days_on_market=listing.days_on_market,
        original_list_price=listing.original_list_price,
        virtual_tour_url=listing.virtual_tour_url,
        listing_agent_mls_id=listing.list_agent_mls_id,
        listing_office_mls_id=listing.list_office_mls_id,
        modification_timestamp=listing.modification_timestamp,
        originating_system_name=listing.originating_system_name or default_source_system,
        is_mls_listing=True,
        mls_status=listing.standard_status,
        mls_raw_data=listing.raw,
    )


def map_media(
    media: ExternalMedia,
    position: int,
    property_id: Optional[str] = None,
) -> PropertyImageFields:
    """Translate one provider photo into a property image row.

    ``position`` is the photo's index after ordering; the first photo is primary.
    """
    return PropertyImageFields(
        property_id=property_id,
        media_key=media.media_key,
        image_url=media.media_url or "",
        is_primary=position == 0,
        display_order=media.order if media.order is not None and media.order >= 0 else position,
    )


def is_test_listing(listing: ExternalListing) -> bool:
    """Provider placeholder listings that must never reach the public catalog."""
    address = (listing.unparsed_address or "").lower()
    remarks = (listing.public_remarks or "").lower()
    if any(marker in address for marker in TEST_ADDRESS_MARKERS):
        return True
    return any(marker in remarks for marker in TEST_REMARKS_MARKERS)


def passes_filters(
    listing: ExternalListing,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    county: Optional[str] = None,
) -> bool:
    """Local post-filters the feed query cannot express."""
    price = listing.list_price or 0
    if min_price and price < min_price:
        return False
    if max_price and price > max_price:
        return False
    if county:
        listing_county = (listing.county_or_parish or "").upper()
        if county.upper() not in listing_county:
            return False
    return True


def is_photo(record: dict[str, Any]) -> bool:
    category = str(record.get("MediaCategory") or "").lower()
    return any(marker in category for marker in PHOTO_CATEGORY_MARKERS)


def _media_order(record: dict[str, Any]) -> int:
    try:
        return int(record.get("Order") or 0)
    except (TypeError, ValueError):
        return 0


def select_photos(media_records: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """Photo-like media only, in provider display order."""
    photos = [record for record in (media_records or []) if isinstance(record, dict) and is_photo(record)]
    return sorted(photos, key=_media_order)
