from .events import EVENT_TYPES, ConversionEvent, EventType
from .integration_config import (
    ApiConfig,
    ApiSettings,
    FieldMapping,
    HybridConfig,
    IntegrationConfig,
    PostbackConfig,
    PostbackSettings,
    load_integration_config,
)

__all__ = [
    "EVENT_TYPES",
    "ConversionEvent",
    "EventType",
    "ApiConfig",
    "ApiSettings",
    "FieldMapping",
    "HybridConfig",
    "IntegrationConfig",
    "PostbackConfig",
    "PostbackSettings",
    "load_integration_config",
]
