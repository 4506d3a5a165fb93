"""
Diff utilities for the configuration editor.

Compares the last persisted settings document with the draft and produces a
flat list of DiffEntry objects classified as added, removed or changed. A
subtree that exists on only one side is reported once at its root rather
than per leaf, which keeps the confirmation view readable.

Value equality is delegated to DeepDiff so the "unsaved changes" indicator
and the diff list always agree.
"""

from typing import Dict, Any, List, Optional, Sequence, Tuple, Union
import json
import logging
import re

from deepdiff import DeepDiff
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .schema_utils import clone_json, is_json_object

logger = logging.getLogger(__name__)

ROOT_PATH = "(root)"

PathSegment = Union[str, int]


class _Missing:
    """Marker for a value that is absent (as opposed to JSON null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class DiffEntry(BaseModel):
    """
    One structural difference between the original and the draft.

    "before" and "after" are only considered present when they were passed
    explicitly, so JSON null is a legal value on either side.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    type: str
    before: Any = None
    after: Any = None
    segments: Tuple[PathSegment, ...] = Field(default=(), exclude=True, repr=False)

    @model_validator(mode='after')
    def _check_sides(self) -> 'DiffEntry':
        has_before = 'before' in self.model_fields_set
        has_after = 'after' in self.model_fields_set
        if self.type == 'added':
            if has_before or not has_after:
                raise ValueError("added entries carry only 'after'")
        elif self.type == 'removed':
            if has_after or not has_before:
                raise ValueError("removed entries carry only 'before'")
        elif self.type == 'changed':
            if not (has_before and has_after):
                raise ValueError("changed entries carry both 'before' and 'after'")
        else:
            raise ValueError(f"unknown diff type: {self.type}")
        return self

    @property
    def has_before(self) -> bool:
        return 'before' in self.model_fields_set

    @property
    def has_after(self) -> bool:
        return 'after' in self.model_fields_set

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with only the sides that are present."""
        return self.model_dump(exclude_unset=True)


def _bool_mismatch(a: Any, b: Any) -> bool:
    """True if a boolean faces a non-boolean anywhere in the two trees."""
    if isinstance(a, bool) != isinstance(b, bool):
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        return any(_bool_mismatch(a[key], b[key]) for key in a.keys() & b.keys())
    if isinstance(a, list) and isinstance(b, list):
        return any(_bool_mismatch(x, y) for x, y in zip(a, b))
    return False


def json_equal(a: Any, b: Any) -> bool:
    """
    Deep JSON equality.

    Integers and floats with the same value are equal, booleans never equal
    numbers, object key order is ignored and array order is significant.
    """
    if a is b:
        return True
    if a is MISSING or b is MISSING:
        return False
    # DeepDiff treats bool as a numeric type once numeric type changes are ignored
    if _bool_mismatch(a, b):
        return False
    return not DeepDiff(a, b, ignore_numeric_type_changes=True)


def format_path(segments: Sequence[PathSegment]) -> str:
    """
    Render a path as dotted/bracketed notation, e.g. servers[0].host.

    The empty path renders as ROOT_PATH.
    """
    if not segments:
        return ROOT_PATH

    rendered = ''
    for segment in segments:
        if isinstance(segment, int) and not isinstance(segment, bool):
            rendered = f"{rendered}[{segment}]"
        else:
            rendered = f"{rendered}.{segment}" if rendered else str(segment)
    return rendered


_PATH_TOKEN = re.compile(r"\[(\d+)\]|([^.\[\]]+)")


def parse_path(text: str) -> List[PathSegment]:
    """
    Inverse of format_path for keys without dots or brackets.

    Returns:
        List of segments, str for object keys and int for array indices
    """
    if not text or text == ROOT_PATH:
        return []
    segments: List[PathSegment] = []
    for index, key in _PATH_TOKEN.findall(text):
        segments.append(int(index) if index else key)
    return segments


def build_diff_entries(original: Any, current: Any,
                       path: Sequence[PathSegment] = (),
                       diffs: Optional[List[DiffEntry]] = None) -> List[DiffEntry]:
    """
    Recursively compare two JSON value trees.

    Args:
        original: Value from the persisted document, or MISSING
        current: Value from the draft, or MISSING
        path: Path of the values being compared
        diffs: Accumulator; a new list is created when omitted

    Returns:
        The accumulated list of DiffEntry objects
    """
    if diffs is None:
        diffs = []
    segments = tuple(path)

    if original is MISSING and current is MISSING:
        return diffs

    if original is MISSING:
        diffs.append(DiffEntry(path=format_path(segments), type='added',
                               after=clone_json(current), segments=segments))
        return diffs

    if current is MISSING:
        diffs.append(DiffEntry(path=format_path(segments), type='removed',
                               before=clone_json(original), segments=segments))
        return diffs

    if is_json_object(original) and is_json_object(current):
        keys = list(original.keys()) + [k for k in current.keys() if k not in original]
        for key in keys:
            build_diff_entries(original.get(key, MISSING), current.get(key, MISSING),
                               segments + (key,), diffs)
        return diffs

    if isinstance(original, list) and isinstance(current, list):
        for index in range(max(len(original), len(current))):
            before = original[index] if index < len(original) else MISSING
            after = current[index] if index < len(current) else MISSING
            build_diff_entries(before, after, segments + (index,), diffs)
        return diffs

    if not json_equal(original, current):
        diffs.append(DiffEntry(path=format_path(segments), type='changed',
                               before=clone_json(original), after=clone_json(current),
                               segments=segments))
    return diffs


def calculate_diff(original: Dict[str, Any], modified: Dict[str, Any]) -> List[DiffEntry]:
    """Diff two settings documents starting at the root path."""
    return build_diff_entries(original, modified, ())


def has_changes(diff: List[DiffEntry]) -> bool:
    return bool(diff)


def _entry_segments(entry: DiffEntry) -> List[PathSegment]:
    if entry.segments or entry.path == ROOT_PATH:
        return list(entry.segments)
    return parse_path(entry.path)


def _set_at(container: Any, segments: List[PathSegment], value: Any) -> Any:
    if not segments:
        return value
    parent = container
    for segment in segments[:-1]:
        parent = parent[segment]
    last = segments[-1]
    if isinstance(parent, list) and isinstance(last, int) and last == len(parent):
        parent.append(value)
    else:
        parent[last] = value
    return container


def _delete_at(container: Any, segments: List[PathSegment]) -> Any:
    if not segments:
        return MISSING
    parent = container
    for segment in segments[:-1]:
        parent = parent[segment]
    del parent[segments[-1]]
    return container


def apply_diff_entries(original: Any, entries: List[DiffEntry]) -> Any:
    """
    Apply diff entries to a copy of original.

    Additions and changes are applied in emission order; removals are applied
    last and in reverse so array indices stay valid.

    Returns:
        The reconstructed value, or MISSING if the root itself was removed
    """
    result = original if original is MISSING else clone_json(original)

    for entry in entries:
        if entry.type in ('added', 'changed'):
            result = _set_at(result, _entry_segments(entry), clone_json(entry.after))

    for entry in reversed(entries):
        if entry.type == 'removed':
            result = _delete_at(result, _entry_segments(entry))

    return result


def summarize_diff(entries: List[DiffEntry]) -> Dict[str, int]:
    """Count entries per change type."""
    summary = {'added': 0, 'removed': 0, 'changed': 0, 'total': len(entries)}
    for entry in entries:
        summary[entry.type] += 1
    return summary


def format_value(value: Any = MISSING, max_length: Optional[int] = None) -> str:
    """
    Format a value for display. Strings are shown raw, other values as
    indented JSON; an absent value is shown as a dash.
    """
    if value is MISSING:
        return '—'
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.debug(f"Could not serialize value for display: {e}")
            text = str(value)
    if max_length and len(text) > max_length:
        return f"{text[:max_length - 3]}..."
    return text


def create_change_badge(change_type: str) -> str:
    """
    Create a badge for a change type.

    Args:
        change_type: added, removed or changed

    Returns:
        Markdown badge string
    """
    badges = {
        'changed': '🔄 **Changed**',
        'added': '➕ **Added**',
        'removed': '➖ **Removed**',
    }
    return badges.get(change_type, f'📝 **{change_type.title()}**')


def format_diff_for_display(entries: List[DiffEntry]) -> str:
    """
    Format a combined diff list as markdown for the confirmation dialog.

    Args:
        entries: DiffEntry list from the primary document and side channels

    Returns:
        Formatted string for display
    """
    if not entries:
        return "✅ **No changes detected**"

    summary = summarize_diff(entries)
    lines = [
        f"## 📝 **Changes Summary** ({summary['total']})",
        f"➕ {summary['added']} added · ➖ {summary['removed']} removed · 🔄 {summary['changed']} changed",
        "",
    ]

    for entry in entries:
        lines.append(f"{create_change_badge(entry.type)} `{entry.path}`")
        before = format_value(entry.before if entry.has_before else MISSING)
        after = format_value(entry.after if entry.has_after else MISSING)
        lines.append("```")
        lines.append(f"before: {before}")
        lines.append(f"after:  {after}")
        lines.append("```")

    return "\n".join(lines)
