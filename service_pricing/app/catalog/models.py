"""
Catalog data models.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..rules.money import DecimalParam


class Country(BaseModel):
    """Destination country."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    iso: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2 code")
    name: str
    region: Optional[str] = None

    @field_validator("iso")
    @classmethod
    def _upper_iso(cls, iso: str) -> str:
        return iso.upper()


class CatalogBundle(BaseModel):
    """Normalized bundle record supplied by the catalog."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str
    group: Optional[str] = None
    validity_days: int = Field(..., ge=1)
    cost: DecimalParam = Field(..., ge=0)
    currency: str = "USD"
    countries: List[str] = Field(default_factory=list)
    region: Optional[str] = None
    provider: Optional[str] = None
    data_amount_mb: Optional[int] = None
    is_unlimited: bool = False

    @field_validator("countries")
    @classmethod
    def _upper_countries(cls, countries: List[str]) -> List[str]:
        return [iso.upper() for iso in countries]
