"""
Adapter Factory for config-driven source creation.

Maps each ``sources`` entry in sources.yaml onto an adapter by its ``type``.
New feed types register a builder here; nothing else in the pipeline
branches on source names or types.

Usage:
    from calendar_ingest.ingestion.factory import AdapterFactory

    factory = AdapterFactory(Config.load_sources_config())
    adapters = factory.create_all_enabled_adapters()
"""

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from calendar_ingest.configs.config import Config
from calendar_ingest.configs.settings import Settings

from .adapters import (
    APIAdapter,
    APIAdapterConfig,
    BaseSourceAdapter,
    ICalAdapter,
    ICalAdapterConfig,
    ScraperAdapter,
    ScraperAdapterConfig,
)

logger = logging.getLogger(__name__)

AdapterBuilder = Callable[[dict[str, Any]], BaseSourceAdapter]
ADAPTER_REGISTRY: dict[str, AdapterBuilder] = {}


def register_adapter(source_type: str):
    """
    Decorate a function to register it as the builder for a source type.

    Usage:
        @register_adapter("ical")
        def build_ical(entry: dict) -> ICalAdapter:
            return ICalAdapter(make_config(ICalAdapterConfig, entry))
    """

    def decorator(builder: AdapterBuilder) -> AdapterBuilder:
        ADAPTER_REGISTRY[source_type] = builder
        return builder

    return decorator


def make_config(config_cls, entry: dict[str, Any]):
    """
    Build a dataclass config from a YAML entry.

    Keys the dataclass does not declare are kept in ``custom_config``.
    """
    known = {f.name for f in dataclasses.fields(config_cls) if f.init}
    kwargs = {
        k: v for k, v in entry.items() if k in known and k not in ("source_type", "custom_config")
    }
    extra = {k: v for k, v in entry.items() if k not in known and k != "type"}
    kwargs.setdefault("source_name", entry.get("source_id", ""))
    return config_cls(**kwargs, custom_config=extra)


@register_adapter("ical")
def build_ical_adapter(entry: dict[str, Any]) -> ICalAdapter:
    return ICalAdapter(make_config(ICalAdapterConfig, entry))


@register_adapter("scraper")
def build_scraper_adapter(entry: dict[str, Any]) -> ScraperAdapter:
    return ScraperAdapter(make_config(ScraperAdapterConfig, entry))


@register_adapter("api")
def build_api_adapter(entry: dict[str, Any]) -> APIAdapter:
    return APIAdapter(make_config(APIAdapterConfig, entry))


class AdapterFactory:
    """Creates adapters from the loaded sources configuration."""

    def __init__(self, config: dict, settings: Settings | None = None):
        self.config = config
        self.settings = settings

    def _defaults(self) -> dict[str, Any]:
        if self.settings is None:
            return {}
        return {
            "timezone": self.settings.LOCAL_TIMEZONE,
            "request_timeout": self.settings.HTTP_TIMEOUT_S,
        }

    def list_sources(self) -> list[dict]:
        return Config.get_source_configs(self.config)

    def create_adapter(self, entry: dict[str, Any]) -> BaseSourceAdapter:
        """
        Create one adapter.

        Raises:
            ValueError: Unknown ``type`` or invalid source configuration
        """
        source_type = entry.get("type")
        builder = ADAPTER_REGISTRY.get(source_type)
        if builder is None:
            raise ValueError(
                f"Unknown source type '{source_type}' for '{entry.get('source_id')}'. "
                f"Available: {sorted(ADAPTER_REGISTRY)}"
            )
        return builder({**self._defaults(), **entry})

    def create_all_enabled_adapters(self) -> list[BaseSourceAdapter]:
        """
        Create adapters for every enabled source, in config order.

        A source with a broken configuration is logged and skipped.
        """
        adapters = []
        for entry in self.list_sources():
            if not entry.get("enabled", True):
                continue
            try:
                adapters.append(self.create_adapter(entry))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping source '{entry['source_id']}': {e}")
        return adapters
