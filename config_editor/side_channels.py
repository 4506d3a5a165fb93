"""
Side-channel documents edited alongside a tool's primary settings.

Some tools keep part of their configuration in auxiliary files that have no
schema: a free-form key/value store, a single secret, or a fixed set of
environment variables. Each kind is wrapped in a channel object with its own
original/draft pair. The save pipeline only talks to channels through the
SideChannel protocol, so a new document kind is added by implementing it.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable
import json
import logging
import re

from .diff_utils import DiffEntry, json_equal, format_value
from .exceptions import DuplicateKeyError, ValueParseError

logger = logging.getLogger(__name__)

_NUMBER_START = re.compile(r'^-?\d')


@runtime_checkable
class SideChannel(Protocol):
    """
    Capability interface shared by all auxiliary documents.

    fetch reads the persisted document without touching the channel, apply
    installs it as the new original and draft. compute_diffs, reset and
    is_dirty drive editing and confirmation; payload and commit are used once
    the user confirms a save.
    """

    name: str

    def fetch(self) -> Any:
        ...

    def apply(self, loaded: Any) -> None:
        ...

    def load(self) -> Any:
        ...

    def compute_diffs(self) -> List[DiffEntry]:
        ...

    def reset(self) -> None:
        ...

    @property
    def is_dirty(self) -> bool:
        ...

    def payload(self) -> Any:
        ...

    def commit(self) -> None:
        ...


def classify_scalar_transition(path: str, before: Optional[str], after: Optional[str]) -> List[DiffEntry]:
    """
    Diff a single string value by emptiness.

    Empty before and non-empty after is an addition, the reverse a removal,
    anything else a change. Empty sides are omitted from the entry.
    """
    before = before or ''
    after = after or ''
    if before == after:
        return []

    if not before:
        return [DiffEntry(path=path, type='added', after=after)]
    if not after:
        return [DiffEntry(path=path, type='removed', before=before)]
    return [DiffEntry(path=path, type='changed', before=before, after=after)]


# ---------------------------------------------------------------------------
# Single secret
# ---------------------------------------------------------------------------

class SecretChannel:
    """
    One secret string (e.g. an API token) stored in its own file.

    Args:
        name: Channel name, used as the key of its payload at save time
        path: Path shown in the diff list, e.g. "auth.OPENAI_API_KEY"
        loader: Callable returning the persisted secret or None
    """

    def __init__(self, name: str, path: str, loader: Callable[[], Optional[str]]):
        self.name = name
        self.path = path
        self._loader = loader
        self._original = ''
        self._value = ''
        self._dirty = False

    @property
    def value(self) -> str:
        return self._value

    @property
    def original(self) -> str:
        return self._original

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def set_value(self, value: Optional[str]) -> None:
        self._value = value or ''
        self._dirty = True

    def fetch(self) -> Optional[str]:
        loaded = self._loader()
        if loaded is not None and not isinstance(loaded, str):
            raise TypeError(f"{self.path} must be a string, got {type(loaded).__name__}")
        return loaded

    def apply(self, loaded: Optional[str]) -> None:
        self._original = loaded or ''
        self._value = self._original
        self._dirty = False
        logger.debug(f"Loaded secret channel {self.name}")

    def load(self) -> str:
        self.apply(self.fetch())
        return self._value

    def compute_diffs(self) -> List[DiffEntry]:
        return classify_scalar_transition(self.path, self._original, self._value)

    def reset(self) -> None:
        self._value = self._original
        self._dirty = False

    def payload(self) -> str:
        return self._value

    def commit(self) -> None:
        self._original = self._value
        self._dirty = False


# ---------------------------------------------------------------------------
# Fixed environment map
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EnvField:
    """
    A named environment variable in an EnvMapChannel.

    Attributes:
        field: Short field name used by the UI, e.g. "api_key"
        env_name: Variable name in the document, e.g. "GEMINI_API_KEY"
        default: Value used when the variable is absent
        secret: True if the UI should mask the value
    """
    field: str
    env_name: str
    default: str = ''
    secret: bool = False


class EnvMapChannel:
    """
    A small fixed record of string environment variables.

    Every field is diffed on its own as "<prefix>.<ENV_NAME>".
    """

    def __init__(self, name: str, fields: Sequence[EnvField],
                 loader: Callable[[], Optional[Dict[str, str]]], prefix: str = 'env'):
        self.name = name
        self.fields: Tuple[EnvField, ...] = tuple(fields)
        self.prefix = prefix
        self._loader = loader
        self._original = self._defaults()
        self._values = dict(self._original)
        self._dirty = False

    def _defaults(self) -> Dict[str, str]:
        return {f.env_name: f.default for f in self.fields}

    def _lookup(self, name: str) -> EnvField:
        for env_field in self.fields:
            if name in (env_field.field, env_field.env_name):
                return env_field
        raise KeyError(f"Unknown field {name} in {self.name}")

    @property
    def values(self) -> Dict[str, str]:
        return dict(self._values)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def get(self, name: str) -> str:
        return self._values[self._lookup(name).env_name]

    def set_field(self, name: str, value: Optional[str]) -> None:
        env_field = self._lookup(name)
        self._values[env_field.env_name] = value or ''
        self._dirty = True

    def fetch(self) -> Dict[str, str]:
        loaded = self._loader() or {}
        if not isinstance(loaded, dict):
            raise TypeError(f"{self.name} must be a mapping of variables")
        return loaded

    def apply(self, loaded: Dict[str, str]) -> None:
        values = {}
        for env_field in self.fields:
            raw = loaded.get(env_field.env_name)
            values[env_field.env_name] = env_field.default if raw is None else str(raw)
        self._original = values
        self._values = dict(values)
        self._dirty = False

    def load(self) -> Dict[str, str]:
        self.apply(self.fetch())
        return dict(self._values)

    def compute_diffs(self) -> List[DiffEntry]:
        diffs: List[DiffEntry] = []
        for env_field in self.fields:
            diffs.extend(classify_scalar_transition(
                f"{self.prefix}.{env_field.env_name}",
                self._original.get(env_field.env_name),
                self._values.get(env_field.env_name),
            ))
        return diffs

    def reset(self) -> None:
        self._values = dict(self._original)
        self._dirty = False

    def payload(self) -> Dict[str, str]:
        return dict(self._values)

    def commit(self) -> None:
        self._original = dict(self._values)
        self._dirty = False


# ---------------------------------------------------------------------------
# Free-form key/value store
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyValueEntry:
    """One editable row; the value is raw text typed by the user."""
    key: str = ''
    value: str = ''


def looks_like_json(text: str) -> bool:
    """
    Heuristic deciding whether a value should be parsed as JSON.

    Only the first character (or a literal true/false/null) is inspected, so
    some plain strings starting with a digit or a brace are treated as JSON.
    """
    trimmed = text.strip()
    if not trimmed:
        return False
    return (
        trimmed[0] in '{["'
        or bool(_NUMBER_START.match(trimmed))
        or trimmed in ('true', 'false', 'null')
    )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_entry_value(text: str) -> Any:
    """Parse text as strict JSON (NaN and Infinity are rejected)."""
    return json.loads(text, parse_constant=_reject_constant)


def entries_from_object(obj: Optional[Dict[str, Any]]) -> List[KeyValueEntry]:
    """Turn a persisted object into editable rows; non-strings become JSON text."""
    if not obj:
        return []
    return [
        KeyValueEntry(key=key, value=value if isinstance(value, str) else format_value(value))
        for key, value in obj.items()
    ]


def build_object(entries: Sequence[KeyValueEntry], document: str) -> Optional[Dict[str, Any]]:
    """
    Build the document object from editable rows.

    Blank keys are skipped, blank values are stored as "". Values that look
    like JSON are parsed, everything else is stored verbatim.

    Raises:
        DuplicateKeyError: If a key appears twice
        ValueParseError: If a JSON-looking value fails to parse

    Returns:
        The object, or None when there is nothing to write
    """
    result: Dict[str, Any] = {}
    seen = set()

    for entry in entries:
        key = entry.key.strip()
        if not key:
            continue
        if key in seen:
            raise DuplicateKeyError(document, key)
        seen.add(key)

        trimmed = entry.value.strip()
        if not trimmed:
            result[key] = ''
            continue

        if looks_like_json(trimmed):
            try:
                result[key] = parse_entry_value(trimmed)
            except ValueError as e:
                raise ValueParseError(document, key, e) from e
        else:
            result[key] = entry.value

    return result or None


def _parse_leniently(entries: Sequence[KeyValueEntry]) -> Optional[Dict[str, Any]]:
    result: Dict[str, Any] = {}
    for entry in entries:
        key = entry.key.strip()
        if not key:
            continue
        value: Any = entry.value
        if looks_like_json(entry.value):
            try:
                value = parse_entry_value(entry.value.strip())
            except ValueError:
                value = entry.value
        result[key] = value
    return result or None


class KeyValueChannel:
    """
    A flat, schema-less JSON document edited as key/value rows.

    The whole document is reported as one diff entry under its name,
    e.g. "config.json".
    """

    def __init__(self, name: str, loader: Callable[[], Optional[Dict[str, Any]]],
                 document: Optional[str] = None):
        self.name = name
        self.document = document or name
        self._loader = loader
        self._original: List[KeyValueEntry] = []
        self._entries: List[KeyValueEntry] = []
        self._dirty = False
        self.error: Optional[str] = None

    @property
    def entries(self) -> List[KeyValueEntry]:
        return list(self._entries)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def add_entry(self, key: str = '', value: str = '') -> None:
        self._entries.append(KeyValueEntry(key=key, value=value))
        self._dirty = True
        self._revalidate()

    def update_entry(self, index: int, key: Optional[str] = None, value: Optional[str] = None) -> None:
        entry = self._entries[index]
        if key is not None:
            entry = replace(entry, key=key)
        if value is not None:
            entry = replace(entry, value=value)
        self._entries[index] = entry
        self._dirty = True
        self._revalidate()

    def remove_entry(self, index: int) -> None:
        del self._entries[index]
        self._dirty = True
        self._revalidate()

    def _revalidate(self) -> None:
        try:
            build_object(self._entries, self.document)
            self.error = None
        except (DuplicateKeyError, ValueParseError) as e:
            self.error = e.message

    def validate(self) -> Optional[Dict[str, Any]]:
        """Build the draft object, recording the error message on failure."""
        try:
            result = build_object(self._entries, self.document)
        except (DuplicateKeyError, ValueParseError) as e:
            self.error = e.message
            raise
        self.error = None
        return result

    def fetch(self) -> Optional[Dict[str, Any]]:
        loaded = self._loader()
        if loaded is not None and not isinstance(loaded, dict):
            raise TypeError(f"{self.document} must contain a JSON object")
        return loaded

    def apply(self, loaded: Optional[Dict[str, Any]]) -> None:
        self._original = entries_from_object(loaded)
        self._entries = list(self._original)
        self._dirty = False
        self.error = None
        logger.debug(f"Loaded {len(self._entries)} entries for {self.document}")

    def load(self) -> Optional[Dict[str, Any]]:
        loaded = self.fetch()
        self.apply(loaded)
        return loaded

    def compute_diffs(self) -> List[DiffEntry]:
        current = self.validate()
        original = _parse_leniently(self._original)

        if json_equal(current, original):
            return []

        if original is None:
            return [DiffEntry(path=self.document, type='added', after=current)]
        if current is None:
            return [DiffEntry(path=self.document, type='removed', before=original)]
        return [DiffEntry(path=self.document, type='changed', before=original, after=current)]

    def reset(self) -> None:
        self._entries = list(self._original)
        self._dirty = False
        self.error = None

    def payload(self) -> Optional[Dict[str, Any]]:
        return self.validate()

    def commit(self) -> None:
        self._original = entries_from_object(self.validate())
        self._entries = list(self._original)
        self._dirty = False
        self.error = None
