"""
Configuration Management Module
"""
from .settings import (
    Settings,
    QuerySettings,
    EntitySettings,
    RetrySettings,
    WikiSettings,
    TemplateSettings,
    RenderSettings,
    OrchestratorSettings,
    LogSettings,
    LocationRegion,
    get_settings,
)

__all__ = [
    "Settings",
    "QuerySettings",
    "EntitySettings",
    "RetrySettings",
    "WikiSettings",
    "TemplateSettings",
    "RenderSettings",
    "OrchestratorSettings",
    "LogSettings",
    "LocationRegion",
    "get_settings",
]
