"""
Configuration loading utilities for the configuration editor.

Loads config.yaml, merges it over built-in defaults and exposes the list of
tools whose settings can be edited. Problems with the file never stop the
application: it falls back to defaults and logs what went wrong.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, List, Literal, Optional
import logging
from copy import deepcopy

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("config.yaml")

_config_cache: Optional[Dict[str, Any]] = None

ToolKind = Literal['json', 'key_value', 'secret', 'env']


class EnvFieldConfig(BaseModel):
    """One environment variable edited by an env-kind tool."""

    field: str
    env_name: str
    default: str = ''
    secret: bool = False


def _default_env_fields() -> List[EnvFieldConfig]:
    return [
        EnvFieldConfig(field='api_key', env_name='GEMINI_API_KEY', secret=True),
        EnvFieldConfig(field='base_url', env_name='GOOGLE_GEMINI_BASE_URL'),
        EnvFieldConfig(field='model', env_name='GEMINI_MODEL', default='gemini-2.5-pro'),
    ]


class ToolConfig(BaseModel):
    """
    Where a tool keeps its configuration and which side documents it has.

    Attributes:
        name: Unique identifier of the tool
        title: Display title
        kind: json (settings only), key_value (plus a free-form JSON file),
            secret (plus a single secret in a JSON file) or env (plus a .env file)
        config_dir: Directory holding the tool's files
        settings_file: Primary settings document (.json, .yaml or .yml)
        schema_file: Optional JSON/YAML schema describing the settings
    """

    name: str
    title: str = ''
    description: str = ''
    kind: ToolKind = 'json'
    config_dir: Path
    settings_file: str = 'settings.json'
    schema_file: Optional[Path] = None
    extra_file: str = 'config.json'
    auth_file: str = 'auth.json'
    secret_key: str = 'OPENAI_API_KEY'
    env_file: str = '.env'
    env_fields: List[EnvFieldConfig] = Field(default_factory=_default_env_fields)

    @field_validator('name')
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tool name must not be blank")
        return value.strip()

    @field_validator('config_dir', 'schema_file')
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @property
    def display_title(self) -> str:
        return self.title or self.name

    @property
    def settings_path(self) -> Path:
        return self.config_dir / self.settings_file


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Tool Config Editor',
            'version': '1.0.0',
            'debug': False
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        },
        'ui': {
            'page_title': 'Tool Configuration',
            'sidebar_title': 'Tools'
        },
        'tools': []
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        config_path = CONFIG_FILE

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def get_config() -> Dict[str, Any]:
    """Cached configuration, loaded on first use."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


def reload_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Force reload of configuration from file.
    Useful for testing or when configuration changes.
    """
    global _config_cache
    _config_cache = load_config(config_path)
    return _config_cache


def get_config_value(section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        section: Configuration section (e.g., 'logging', 'ui')
        key: Configuration key within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_values = get_config().get(section, {})
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def get_tool_configs(config: Optional[Dict[str, Any]] = None) -> List[ToolConfig]:
    """
    Validate the tools section.

    Invalid entries and repeated tool names are logged and skipped.

    Returns:
        ToolConfig list in file order
    """
    if config is None:
        config = get_config()

    raw_tools = config.get('tools') or []
    if not isinstance(raw_tools, list):
        logger.error("Configuration 'tools' must be a list, ignoring it")
        return []

    tools: List[ToolConfig] = []
    seen = set()
    for index, raw in enumerate(raw_tools):
        try:
            tool = ToolConfig.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Invalid tool definition at position {index}: {e}")
            continue
        if tool.name in seen:
            logger.warning(f"Duplicate tool name '{tool.name}' in configuration, skipping")
            continue
        seen.add(tool.name)
        tools.append(tool)

    return tools


def get_logging_level(level_str: str) -> int:
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


def configure_logging(config: Optional[Dict[str, Any]] = None) -> int:
    """
    Configure root logging from the logging section.

    Returns:
        The logging level that was applied
    """
    if config is None:
        config = get_config()
    logging_config = config.get('logging', {}) or {}
    level = get_logging_level(logging_config.get('level', 'INFO'))
    log_format = logging_config.get('format') or get_default_config()['logging']['format']
    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {logging.getLevelName(level)}")
    return level
