"""
Per-house integration config, stored as JSON in `betting_houses.api_config`.

The JSON shape is `{"postback": {...}, "api": {...}}`; which sections are
required depends on the house's `integration_type`, so the blob is parsed
into one variant of a discriminated union when the house is loaded.
"""
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ..core.exceptions import HouseConfigError
from .events import EVENT_TYPES

DEFAULT_EVENT_TYPE_MAPPING: Dict[str, str] = {
    "signup": "registration",
    "register": "registration",
    "first_deposit": "deposit",
    "revenue": "profit",
}


class PostbackSettings(BaseModel):
    require_token: bool = False
    enabled_events: List[str] = Field(default_factory=list)  # empty means every event type

    @field_validator("enabled_events")
    @classmethod
    def _known_events(cls, v: List[str]) -> List[str]:
        unknown = [e for e in v if e not in EVENT_TYPES]
        if unknown:
            raise ValueError(f"unknown event types: {', '.join(unknown)}")
        return v


class FieldMapping(BaseModel):
    """Upstream field names for each ConversionEvent attribute."""
    customer_id: str = "customer_id"
    amount: str = "amount"
    event_type: str = "event_type"
    timestamp: str = "created_at"
    subid: Optional[str] = "subid"


class ApiSettings(BaseModel):
    base_url: str
    auth_type: Literal["bearer", "apikey", "basic"] = "bearer"
    api_key: str
    # bearer houses that also expect the key in X-API-Key
    send_key_header: bool = False
    api_secret: Optional[str] = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    conversions_endpoint: str = "/api/v1/conversions"
    health_endpoint: str = "/health"
    records_key: str = "conversions"
    page_limit: Optional[int] = None
    field_mapping: FieldMapping = Field(default_factory=FieldMapping)
    event_type_mapping: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_EVENT_TYPE_MAPPING))
    default_affiliate_username: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def _non_empty_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("api_key must not be empty")
        return v.strip()

    @field_validator("conversions_endpoint", "health_endpoint")
    @classmethod
    def _leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else "/" + v

    @field_validator("event_type_mapping")
    @classmethod
    def _maps_to_known_events(cls, v: Dict[str, str]) -> Dict[str, str]:
        bad = {k: t for k, t in v.items() if t not in EVENT_TYPES}
        if bad:
            raise ValueError(f"event_type_mapping targets unknown events: {bad}")
        return {k.lower(): t for k, t in v.items()}


class PostbackConfig(BaseModel):
    integration_type: Literal["postback"] = "postback"
    postback: PostbackSettings = Field(default_factory=PostbackSettings)


class ApiConfig(BaseModel):
    integration_type: Literal["api"] = "api"
    api: ApiSettings


class HybridConfig(BaseModel):
    integration_type: Literal["hybrid"] = "hybrid"
    api: ApiSettings
    postback: PostbackSettings = Field(default_factory=PostbackSettings)


IntegrationConfig = Annotated[
    Union[PostbackConfig, ApiConfig, HybridConfig],
    Field(discriminator="integration_type"),
]

_adapter = TypeAdapter(IntegrationConfig)


def load_integration_config(house) -> Union[PostbackConfig, ApiConfig, HybridConfig]:
    """
    Parse a house's stored config into its integration variant.

    Raises HouseConfigError naming the house when the blob does not match
    what its integration_type requires.
    """
    raw = dict(house.api_config or {})
    raw["integration_type"] = house.integration_type
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise HouseConfigError(
            f"Invalid integration config for house '{house.identifier}': {e.errors(include_url=False)}"
        ) from e


def postback_settings(config) -> PostbackSettings:
    return getattr(config, "postback", None) or PostbackSettings()


def api_settings(config) -> Optional[ApiSettings]:
    return getattr(config, "api", None)
