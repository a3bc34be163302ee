from .settings import (
    NeptuneSettings, StreamSettings, AggregationSettings, Settings,
    get_settings, reload_settings
)

__all__ = [
    "NeptuneSettings",
    "StreamSettings",
    "AggregationSettings",
    "Settings",
    "get_settings",
    "reload_settings",
]
