"""
Configuration for the ingestion pipeline.
Tunables come from a JSON file with built-in defaults; secrets come from
the environment (.env supported).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config/pipeline_config.json"
PLACEHOLDER_IMAGE = "/images/no-image.svg"


def _default_providers() -> Dict[str, Dict]:
    return {
        'pa-api': {'enabled': True},
        'og-metadata': {'enabled': True},
    }


@dataclass
class PipelineConfig:
    provider_priority: List[str] = field(default_factory=lambda: ['pa-api', 'og-metadata'])
    providers: Dict[str, Dict] = field(default_factory=_default_providers)
    default_marketplace: str = 'co.jp'
    request_timeout_seconds: float = 10.0
    provider_timeout_seconds: float = 15.0
    max_redirect_hops: int = 5
    placeholder_image: str = PLACEHOLDER_IMAGE
    other_users_sample_size: int = 5
    refresh_concurrency: int = 4
    pa_api_min_interval_seconds: float = 1.1
    use_gemini_extraction: bool = False
    gemini_model: str = 'gemini-2.5-flash'
    promotion_min_users: int = 2

    # Secrets, never read from the JSON file
    amazon_access_key: Optional[str] = None
    amazon_secret_key: Optional[str] = None
    amazon_partner_tag: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    gemini_api_key: Optional[str] = None

    def provider_enabled(self, name: str) -> bool:
        return self.providers.get(name, {}).get('enabled', False)

    @property
    def has_pa_api_credentials(self) -> bool:
        return bool(self.amazon_access_key and self.amazon_secret_key and self.amazon_partner_tag)

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


_SECRET_FIELDS = {
    'amazon_access_key': 'AMAZON_ACCESS_KEY',
    'amazon_secret_key': 'AMAZON_SECRET_KEY',
    'amazon_partner_tag': 'AMAZON_PARTNER_TAG',
    'supabase_url': 'SUPABASE_URL',
    'supabase_key': 'SUPABASE_KEY',
    'gemini_api_key': 'GEMINI_API_KEY',
}


def _load_file(config_path: str) -> Dict:
    """Load configuration from JSON file, empty dict when unusable."""
    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Config file '%s' not found, using defaults", config_path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Error parsing config file '%s': %s, using defaults", config_path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Config file '%s' must contain an object, using defaults", config_path)
        return {}
    return data


def load_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> PipelineConfig:
    """
    Build the pipeline configuration.

    Args:
        config_path: JSON file with tunables (default: config/pipeline_config.json)
        env_file: Optional .env path; the default .env lookup is used otherwise

    Returns:
        PipelineConfig with file values over defaults and secrets from env
    """
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
    else:
        load_dotenv()

    data = _load_file(config_path or DEFAULT_CONFIG_FILE)
    known = set(PipelineConfig.__dataclass_fields__) - set(_SECRET_FIELDS)

    values = {}
    for key, value in data.items():
        if key in known:
            values[key] = value
        else:
            logger.debug("Ignoring unknown config key '%s'", key)

    if 'providers' in values:
        merged = _default_providers()
        for name, settings in values['providers'].items():
            merged.setdefault(name, {}).update(settings or {})
        values['providers'] = merged

    for attr, env_name in _SECRET_FIELDS.items():
        values[attr] = os.getenv(env_name) or None

    return PipelineConfig(**values)
