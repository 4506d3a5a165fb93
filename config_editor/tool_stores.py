"""
File-backed tool stores.

A tool store knows where a tool's configuration lives and how to read and
write it. The editing engine only uses the ToolStore protocol; the classes
below cover the document arrangements seen in practice:

- SettingsFileStore: a single settings document
- KeyValueFileStore: settings plus a free-form JSON document (e.g. config.json)
- SecretFileStore: settings plus one secret kept in a JSON file (e.g. auth.json)
- EnvFileStore: settings plus a few variables in a .env file

Documents are JSON or YAML depending on the file suffix. Writes go through a
temporary file and os.replace; there is no cross-process locking.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
import logging

import yaml

from .config_loader import ToolConfig
from .exceptions import LoadFailure, SaveFailure
from .side_channels import (
    EnvField,
    EnvMapChannel,
    KeyValueChannel,
    SecretChannel,
    SideChannel,
)

logger = logging.getLogger(__name__)

YAML_SUFFIXES = ('.yaml', '.yml')


@runtime_checkable
class ToolStore(Protocol):
    """Load/save contract consumed by DraftStateManager and SaveOrchestrator."""

    name: str
    title: str

    def load_schema(self) -> Dict[str, Any]:
        ...

    def load_settings(self) -> Dict[str, Any]:
        ...

    def save_settings(self, settings: Dict[str, Any], side_documents: Dict[str, Any]) -> None:
        ...

    def side_channels(self) -> List[SideChannel]:
        ...


def read_document(path: Path) -> Optional[Any]:
    """
    Read a JSON or YAML document.

    Returns:
        Parsed content, or None if the file does not exist or is empty
    """
    if not path.exists():
        return None

    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()

    if not text.strip():
        return None
    if path.suffix.lower() in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def _atomic_write(path: Path, text: str, mode: Optional[int] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_document(path: Path, data: Any, mode: Optional[int] = None) -> None:
    """Write a document as indented JSON or YAML depending on the suffix."""
    if path.suffix.lower() in YAML_SUFFIXES:
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    _atomic_write(path, text, mode)
    logger.info(f"Wrote {path}")


def parse_env_line(line: str) -> Optional[tuple]:
    """Parse KEY=VALUE; comments, blank lines and lines without '=' yield None."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith('#') or '=' not in trimmed:
        return None
    key, value = trimmed.split('=', 1)
    return key.strip(), value.strip()


def read_env_file(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    pairs: Dict[str, str] = {}
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            parsed = parse_env_line(line)
            if parsed:
                pairs[parsed[0]] = parsed[1]
    return pairs


def write_env_file(path: Path, pairs: Dict[str, str]) -> None:
    """Write sorted KEY=VALUE lines, readable only by the owner."""
    lines = [f"{key}={pairs[key]}" for key in sorted(pairs)]
    _atomic_write(path, "\n".join(lines) + "\n" if lines else "", mode=0o600)
    logger.info(f"Wrote {path}")


class SettingsFileStore:
    """
    Store for a tool whose configuration is a single settings document.

    Args:
        config: Tool definition from config.yaml
    """

    def __init__(self, config: ToolConfig):
        self.config = config
        self.name = config.name
        self.title = config.display_title
        self.settings_path = config.settings_path
        self.schema_path = config.schema_file
        self._channels: List[SideChannel] = self._build_channels()

    def _build_channels(self) -> List[SideChannel]:
        return []

    def side_channels(self) -> List[SideChannel]:
        return list(self._channels)

    def _read(self, path: Path) -> Optional[Any]:
        try:
            return read_document(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise LoadFailure(self.name, e, f"Failed to read {path}: {e}") from e

    def load_schema(self) -> Dict[str, Any]:
        if self.schema_path is None:
            return {}
        if not self.schema_path.exists():
            raise LoadFailure(self.name, FileNotFoundError(str(self.schema_path)),
                              f"Schema file not found: {self.schema_path}")
        schema = self._read(self.schema_path)
        if not isinstance(schema, dict):
            raise LoadFailure(self.name, TypeError("schema is not an object"),
                              f"Schema {self.schema_path} must contain a JSON object")
        return schema

    def load_settings(self) -> Dict[str, Any]:
        settings = self._read(self.settings_path)
        if settings is None:
            logger.info(f"{self.settings_path} does not exist yet, starting from an empty document")
            return {}
        if not isinstance(settings, dict):
            raise LoadFailure(self.name, TypeError("settings is not an object"),
                              f"{self.settings_path} must contain a JSON object")
        return settings

    def save_settings(self, settings: Dict[str, Any], side_documents: Optional[Dict[str, Any]] = None) -> None:
        try:
            write_document(self.settings_path, settings)
            self._save_side_documents(side_documents or {})
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            raise SaveFailure(self.name, e) from e

    def _save_side_documents(self, side_documents: Dict[str, Any]) -> None:
        pass


class KeyValueFileStore(SettingsFileStore):
    """Settings plus a free-form JSON document such as config.json."""

    @property
    def extra_path(self) -> Path:
        return self.config.config_dir / self.config.extra_file

    def _build_channels(self) -> List[SideChannel]:
        return [KeyValueChannel(self.config.extra_file, self._load_extra)]

    def _load_extra(self) -> Optional[Dict[str, Any]]:
        extra = self._read(self.extra_path)
        if extra is not None and not isinstance(extra, dict):
            raise LoadFailure(self.name, TypeError("extra document is not an object"),
                              f"{self.extra_path} must contain a JSON object")
        return extra

    def _save_side_documents(self, side_documents: Dict[str, Any]) -> None:
        if self.config.extra_file not in side_documents:
            return
        extra = side_documents[self.config.extra_file]
        if extra is None:
            if self.extra_path.exists():
                self.extra_path.unlink()
                logger.info(f"Removed {self.extra_path}")
            return
        write_document(self.extra_path, extra)


class SecretFileStore(SettingsFileStore):
    """Settings plus one secret stored under a key of a JSON file such as auth.json."""

    @property
    def auth_path(self) -> Path:
        return self.config.config_dir / self.config.auth_file

    def _build_channels(self) -> List[SideChannel]:
        return [SecretChannel('auth', f"auth.{self.config.secret_key}", self._load_secret)]

    def _load_secret(self) -> Optional[str]:
        auth = self._read(self.auth_path)
        if auth is None:
            return None
        if not isinstance(auth, dict):
            raise LoadFailure(self.name, TypeError("auth document is not an object"),
                              f"{self.auth_path} must contain a JSON object")
        token = auth.get(self.config.secret_key)
        return token if isinstance(token, str) else None

    def _save_side_documents(self, side_documents: Dict[str, Any]) -> None:
        if 'auth' not in side_documents:
            return
        auth = read_document(self.auth_path) if self.auth_path.exists() else None
        auth = auth if isinstance(auth, dict) else {}
        token = side_documents['auth']
        if token:
            auth[self.config.secret_key] = token
        else:
            auth.pop(self.config.secret_key, None)
        write_document(self.auth_path, auth, mode=0o600)


class EnvFileStore(SettingsFileStore):
    """Settings plus a fixed set of variables kept in a .env file."""

    @property
    def env_path(self) -> Path:
        return self.config.config_dir / self.config.env_file

    def _build_channels(self) -> List[SideChannel]:
        fields = [
            EnvField(field=f.field, env_name=f.env_name, default=f.default, secret=f.secret)
            for f in self.config.env_fields
        ]
        return [EnvMapChannel('env', fields, self._load_env)]

    def _load_env(self) -> Dict[str, str]:
        try:
            return read_env_file(self.env_path)
        except OSError as e:
            raise LoadFailure(self.name, e, f"Failed to read {self.env_path}: {e}") from e

    def _save_side_documents(self, side_documents: Dict[str, Any]) -> None:
        if 'env' not in side_documents:
            return
        pairs = read_env_file(self.env_path)
        for env_name, value in side_documents['env'].items():
            if value:
                pairs[env_name] = value
            else:
                pairs.pop(env_name, None)
        write_env_file(self.env_path, pairs)


_STORE_KINDS = {
    'json': SettingsFileStore,
    'key_value': KeyValueFileStore,
    'secret': SecretFileStore,
    'env': EnvFileStore,
}


def build_tool_store(config: ToolConfig) -> SettingsFileStore:
    """Create the store matching a tool definition's kind."""
    store_class = _STORE_KINDS[config.kind]
    logger.debug(f"Creating {store_class.__name__} for tool {config.name}")
    return store_class(config)
