"""
Draft state management for a tool's primary settings document.

DraftState is an immutable {original, draft} pair; the module-level update
functions return a new DraftState instead of mutating one, so detecting
unsaved changes is a plain structural comparison. DraftStateManager owns the
current pair for one tool, the cached schema, the load lifecycle and the
side channels registered for that tool.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Sequence
import logging

from .diff_utils import MISSING, DiffEntry, PathSegment, calculate_diff, json_equal
from .exceptions import (
    DuplicateKeyError,
    EditorNotReadyError,
    LoadFailure,
    SaveInProgressError,
)
from .notices import Notice
from .schema_utils import (
    SchemaOption,
    child_schema,
    clone_json,
    default_value,
    describe,
    effective_type,
    is_compound_field,
    is_secret,
    items_schema,
    resolve_schema,
    schema_for_type,
    schema_options,
    select_options,
    type_label,
)
from .side_channels import SideChannel

logger = logging.getLogger(__name__)

SETTINGS_DOCUMENT = "settings"


class LoadState(str, Enum):
    """Lifecycle of an editing session."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class DraftState:
    """
    The last persisted settings document and the user's draft of it.

    Both documents are private copies; nothing outside this object holds a
    reference to them.
    """
    original: Dict[str, Any] = field(default_factory=dict)
    draft: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'DraftState':
        return cls(original=clone_json(document), draft=clone_json(document))

    @property
    def has_changes(self) -> bool:
        return not json_equal(self.original, self.draft)

    def diff(self) -> List[DiffEntry]:
        return calculate_diff(self.original, self.draft)


def _with_draft(state: DraftState, draft: Dict[str, Any]) -> DraftState:
    return DraftState(original=state.original, draft=draft)


def add_key(state: DraftState, key: str, schema: Optional[Dict[str, Any]] = None,
            field_type: Optional[str] = None) -> DraftState:
    """
    Insert a new top-level key with a synthesized default value.

    Raises:
        DuplicateKeyError: If the key is already present in the draft
    """
    if key in state.draft:
        raise DuplicateKeyError(SETTINGS_DOCUMENT, key,
                                f"Option {key} already exists and cannot be added twice")
    draft = clone_json(state.draft)
    draft[key] = default_value(schema if schema is not None else schema_for_type(field_type))
    return _with_draft(state, draft)


def delete_key(state: DraftState, key: str) -> DraftState:
    draft = clone_json(state.draft)
    draft.pop(key, None)
    return _with_draft(state, draft)


def set_value(state: DraftState, key: str, value: Any) -> DraftState:
    return set_at_path(state, [key], value)


def _walk(container: Any, segments: Sequence[PathSegment]) -> Any:
    for segment in segments:
        container = container[segment]
    return container


def set_at_path(state: DraftState, path: Sequence[PathSegment], value: Any) -> DraftState:
    """Replace the value at a nested path; the parent must already exist."""
    if not path:
        raise ValueError("Cannot replace the document root")
    draft = clone_json(state.draft)
    parent = _walk(draft, path[:-1])
    parent[path[-1]] = clone_json(value)
    return _with_draft(state, draft)


def remove_at_path(state: DraftState, path: Sequence[PathSegment]) -> DraftState:
    """Delete an object member or array element at a nested path."""
    if not path:
        raise ValueError("Cannot remove the document root")
    draft = clone_json(state.draft)
    parent = _walk(draft, path[:-1])
    last = path[-1]
    if isinstance(parent, dict):
        parent.pop(last, None)
    else:
        del parent[last]
    return _with_draft(state, draft)


def append_item(state: DraftState, path: Sequence[PathSegment], item: Any) -> DraftState:
    draft = clone_json(state.draft)
    target = _walk(draft, path)
    if not isinstance(target, list):
        raise TypeError(f"Value at {list(path)} is not an array")
    target.append(clone_json(item))
    return _with_draft(state, draft)


def move_item(state: DraftState, path: Sequence[PathSegment], old_index: int, new_index: int) -> DraftState:
    """Move an array element; out-of-range indices leave the state unchanged."""
    target = _walk(state.draft, path)
    if not isinstance(target, list):
        raise TypeError(f"Value at {list(path)} is not an array")
    if old_index == new_index or not (0 <= old_index < len(target)) or not (0 <= new_index < len(target)):
        return state
    draft = clone_json(state.draft)
    items = _walk(draft, path)
    items.insert(new_index, items.pop(old_index))
    return _with_draft(state, draft)


def reset_draft(state: DraftState) -> DraftState:
    return _with_draft(state, clone_json(state.original))


def rebase(state: DraftState) -> DraftState:
    """Make the draft the new original after a successful save."""
    return DraftState(original=clone_json(state.draft), draft=clone_json(state.draft))


@dataclass(frozen=True)
class FieldDescriptor:
    """
    A top-level option of the draft as shown by the UI.

    Attributes:
        key: Option name
        value: Current draft value
        schema: Resolved schema, None for custom options
        description: Schema description or the default text
        type_label: Display type
        effective_type: Type used to pick an editor, None if unknown
        is_compound: Rendered as a nested editor
        is_secret: Value should be masked
        options: Choices for a select input
    """
    key: str
    value: Any
    schema: Optional[Dict[str, Any]]
    description: str
    type_label: str
    effective_type: Optional[str]
    is_compound: bool
    is_secret: bool = False
    options: List[Any] = field(default_factory=list)


class DraftStateManager:
    """
    Owns the editing session of one tool.

    Args:
        store: Tool store providing load_schema/load_settings
        side_channels: Auxiliary documents; defaults to store.side_channels()
    """

    def __init__(self, store: Any, side_channels: Optional[Sequence[SideChannel]] = None):
        self.store = store
        self.tool = getattr(store, 'name', 'tool')
        if side_channels is None:
            side_channels = store.side_channels() if hasattr(store, 'side_channels') else []
        self.side_channels: List[SideChannel] = list(side_channels)
        self.state = LoadState.UNLOADED
        self.error: Optional[LoadFailure] = None
        self.schema_root: Optional[Dict[str, Any]] = None
        self.document = DraftState()
        self.saving = False
        self.generation = 0

    # -- lifecycle ---------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.state == LoadState.READY

    def load(self, refetch_schema: bool = False) -> LoadState:
        """
        Fetch schema, settings and side-channel documents concurrently.

        The schema is reused from the previous load unless refetch_schema is
        set. Nothing is applied until every fetch has succeeded; on failure
        the session enters ERROR and keeps its previous drafts. Every call
        starts a new generation so confirmations requested earlier go stale.

        Raises:
            SaveInProgressError: If a save is running
        """
        if self.saving:
            raise SaveInProgressError(self.tool)

        self.state = LoadState.LOADING
        self.error = None
        self.generation += 1
        fetch_schema = refetch_schema or self.schema_root is None

        try:
            with ThreadPoolExecutor(max_workers=2 + len(self.side_channels)) as pool:
                settings_future = pool.submit(self.store.load_settings)
                schema_future = pool.submit(self.store.load_schema) if fetch_schema else None
                channel_futures = [pool.submit(channel.fetch) for channel in self.side_channels]

                settings = settings_future.result()
                schema = schema_future.result() if schema_future else self.schema_root
                channel_documents = [future.result() for future in channel_futures]

            if not isinstance(settings, dict):
                raise TypeError(f"Settings document must be a JSON object, got {type(settings).__name__}")
            if schema is not None and not isinstance(schema, dict):
                raise TypeError(f"Schema document must be a JSON object, got {type(schema).__name__}")

        except Exception as e:
            self.error = e if isinstance(e, LoadFailure) else LoadFailure(self.tool, e)
            self.state = LoadState.ERROR
            logger.error(f"Failed to load configuration for {self.tool}: {e}")
            return self.state

        self.schema_root = schema
        self.document = DraftState.from_document(settings)
        for channel, loaded in zip(self.side_channels, channel_documents):
            channel.apply(loaded)
        self.state = LoadState.READY
        logger.info(f"Loaded {len(settings)} options for {self.tool}")
        return self.state

    def reload(self) -> LoadState:
        return self.load(refetch_schema=True)

    def require_ready(self) -> None:
        if self.state != LoadState.READY:
            raise EditorNotReadyError(self.tool, self.state.value)

    # -- read access -------------------------------------------------------

    @property
    def original(self) -> Dict[str, Any]:
        return clone_json(self.document.original)

    @property
    def draft(self) -> Dict[str, Any]:
        return clone_json(self.document.draft)

    @property
    def has_changes(self) -> bool:
        if any(channel.is_dirty for channel in self.side_channels):
            return True
        return self.document.has_changes

    def compute_diffs(self) -> List[DiffEntry]:
        return self.document.diff()

    def schema_for_key(self, key: str) -> Optional[Dict[str, Any]]:
        return child_schema(self.schema_root, key, self.schema_root) if self.schema_root else None

    def schema_at_path(self, path: Sequence[PathSegment]) -> Optional[Dict[str, Any]]:
        """Resolved schema of the value at a nested path, if the schema describes it."""
        schema = self.schema_root
        for segment in path:
            if schema is None:
                return None
            if isinstance(segment, int):
                schema = items_schema(schema, self.schema_root)
            else:
                schema = child_schema(schema, segment, self.schema_root)
        return resolve_schema(schema, self.schema_root)

    def schema_options(self, keyword: Optional[str] = None) -> List[SchemaOption]:
        return schema_options(self.schema_root, keyword, self.document.draft.keys())

    def fields(self) -> List[FieldDescriptor]:
        """Top-level options of the draft, sorted by key."""
        draft = self.document.draft
        descriptors = []
        for key in sorted(draft.keys(), key=lambda k: (k.lower(), k)):
            schema = self.schema_for_key(key)
            value = draft[key]
            descriptors.append(FieldDescriptor(
                key=key,
                value=clone_json(value),
                schema=schema,
                description=describe(schema),
                type_label=type_label(schema, value),
                effective_type=effective_type(schema, value),
                is_compound=is_compound_field(schema, value),
                is_secret=is_secret(schema),
                options=select_options(schema, draft),
            ))
        return descriptors

    # -- editing -----------------------------------------------------------

    def add_key(self, key: str, schema: Optional[Dict[str, Any]] = None,
                field_type: Optional[str] = None) -> Notice:
        """
        Add a top-level option with a default value.

        Blank and duplicate keys leave the draft untouched and return a
        warning notice.
        """
        self.require_ready()
        name = (key or '').strip()
        if not name:
            return Notice.warning("Option name required", "Enter a name for the new option.",
                                  kind='blank_key')
        try:
            self.document = add_key(self.document, name, schema, field_type)
        except DuplicateKeyError as e:
            logger.info(f"Rejected duplicate option {name} for {self.tool}")
            return Notice.warning("Option already exists", e.message, kind='duplicate_key')
        return Notice.success("Option added", f"{name} was added to the draft.", kind='key_added')

    def delete_key(self, key: str) -> None:
        self.require_ready()
        self.document = delete_key(self.document, key)

    def set_value(self, key: str, value: Any) -> None:
        self.require_ready()
        self.document = set_value(self.document, key, value)

    def set_at_path(self, path: Sequence[PathSegment], value: Any) -> None:
        self.require_ready()
        self.document = set_at_path(self.document, path, value)

    def remove_at_path(self, path: Sequence[PathSegment]) -> None:
        self.require_ready()
        self.document = remove_at_path(self.document, path)

    def append_item(self, path: Sequence[PathSegment], item: Any = MISSING) -> None:
        """Append to an array; without an explicit item the items schema default is used."""
        self.require_ready()
        if item is MISSING:
            item = default_value(items_schema(self.schema_at_path(path), self.schema_root))
        self.document = append_item(self.document, path, item)

    def move_item(self, path: Sequence[PathSegment], old_index: int, new_index: int) -> None:
        self.require_ready()
        self.document = move_item(self.document, path, old_index, new_index)

    def reset_draft(self) -> None:
        """Discard all draft edits, including those of the side channels."""
        self.document = reset_draft(self.document)
        for channel in self.side_channels:
            channel.reset()
        logger.info(f"Draft reset for {self.tool}")

    def commit(self) -> None:
        self.document = rebase(self.document)
