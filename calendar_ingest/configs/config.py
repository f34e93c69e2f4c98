"""Configuration loader for feed sources and the geographic filter."""

from pathlib import Path

import yaml

from calendar_ingest.configs.settings import Settings, get_settings


class Config:
    """Loads the YAML source configuration."""

    CONFIG_DIR = Path(__file__).parent.resolve()

    @classmethod
    def load_sources_config(
        cls,
        path: Path | None = None,
        settings: Settings | None = None,
    ) -> dict:
        """
        Load the YAML configuration for feed sources.

        Placeholders like ``${UNSPLASH_ACCESS_KEY}`` are substituted with the
        matching settings value before parsing.
        """
        settings = settings or get_settings()
        config_path = Path(path) if path else settings.SOURCES_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Missing config at {config_path}")

        with open(config_path, encoding="utf-8") as f:
            content = f.read()

        for key, value in settings.model_dump().items():
            placeholder = f"${{{key}}}"
            if placeholder in content:
                val_str = (
                    value.get_secret_value()
                    if hasattr(value, "get_secret_value")
                    else str(value)
                )
                content = content.replace(placeholder, val_str)

        return yaml.safe_load(content) or {}

    @classmethod
    def get_source_configs(cls, config: dict) -> list[dict]:
        """Return the list of source entries, tagging each with its key."""
        sources = config.get("sources") or {}
        return [{"source_id": key, **(value or {})} for key, value in sources.items()]

    @classmethod
    def get_geo_filter_config(cls, config: dict) -> dict:
        """Return the geographic filter section (empty dict when absent)."""
        return config.get("geo_filter") or {}
