"""
Schema utilities for the configuration editor.

Resolves JSON Schema nodes (including one-hop $ref pointers), classifies the
effective type of a field and synthesizes default values for newly added
fields. Every component that needs to know whether a field is compound goes
through is_compound_field so the notion of "type" never diverges.
"""

from copy import deepcopy
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Iterable
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "No description provided"

# Field types offered when adding a custom (schema-less) option
CUSTOM_FIELD_TYPES = ('string', 'number', 'boolean', 'object', 'array')

COMPOUND_TYPES = {'object', 'array'}


@dataclass(frozen=True)
class SchemaOption:
    """
    A known top-level option taken from the root schema's properties.

    Attributes:
        key: Property name
        description: Schema description or DEFAULT_DESCRIPTION
        type_label: Display type of the option
        schema: Resolved schema of the option
        already_exists: True if the key is already present in the draft
    """
    key: str
    description: str
    type_label: str
    schema: Optional[Dict[str, Any]] = None
    already_exists: bool = False


def is_json_object(value: Any) -> bool:
    return isinstance(value, dict)


def clone_json(value: Any) -> Any:
    """Deep-copy a JSON value so callers never share mutable state."""
    return deepcopy(value)


def _unescape_pointer_segment(segment: str) -> str:
    return segment.replace('~1', '/').replace('~0', '~')


def resolve_ref(root_schema: Dict[str, Any], ref: str) -> Optional[Dict[str, Any]]:
    """
    Follow a local JSON Pointer reference inside the root schema.

    Only "#/..." references are supported. Returns None when any segment is
    missing.
    """
    if not isinstance(ref, str) or not ref.startswith('#/'):
        return None

    segments = [_unescape_pointer_segment(s) for s in ref[2:].split('/')]

    current: Any = root_schema
    for segment in segments:
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return None

    return current if isinstance(current, dict) else None


def resolve_schema(schema: Optional[Dict[str, Any]],
                   root_schema: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Resolve a schema node's $ref against the root schema.

    Sibling keys of the $ref-bearing node override the referenced definition.
    A single hop is performed; an unresolvable reference leaves the node
    unchanged.

    Args:
        schema: Schema node, possibly carrying "$ref"
        root_schema: Root schema document the pointer refers into

    Returns:
        The resolved schema, the original node, or None when schema is None
    """
    if schema is None:
        return None

    ref = schema.get('$ref') if isinstance(schema, dict) else None
    if ref and root_schema:
        resolved = resolve_ref(root_schema, ref)
        if resolved is not None:
            overrides = {k: v for k, v in schema.items() if k != '$ref'}
            return {**resolved, **overrides}
        logger.debug(f"Could not resolve schema reference {ref}, keeping node as-is")

    return schema


def primary_type(schema: Optional[Dict[str, Any]]) -> Optional[str]:
    """Declared schema type; the first entry when "type" is a list."""
    if not schema:
        return None
    declared = schema.get('type')
    if isinstance(declared, list):
        return declared[0] if declared else None
    return declared


def infer_value_type(value: Any) -> Optional[str]:
    """Classify a runtime JSON value. None (JSON null or absent) is unknown."""
    if value is None:
        return None
    if isinstance(value, list):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    # bool must be checked before numbers, it is an int subclass
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    return None


def effective_type(schema: Optional[Dict[str, Any]], value: Any = None) -> Optional[str]:
    """Schema-declared type first, then the type of the current value."""
    return primary_type(schema) or infer_value_type(value)


def type_label(schema: Optional[Dict[str, Any]], value: Any = None) -> str:
    """Type used for display; falls back to "string"."""
    return effective_type(schema, value) or 'string'


def is_compound_field(schema: Optional[Dict[str, Any]], value: Any = None) -> bool:
    """True if the field is rendered as a nested editor (object or array)."""
    return effective_type(schema, value) in COMPOUND_TYPES


def default_value(schema: Optional[Dict[str, Any]]) -> Any:
    """
    Produce the initial value of a newly added field.

    Uses schema "default" when present, otherwise an empty value matching the
    declared type, the first enum member, or an empty string. Never raises.
    """
    if not schema:
        return ''

    if 'default' in schema:
        return clone_json(schema['default'])

    field_type = primary_type(schema)
    if field_type == 'object':
        return {}
    if field_type == 'array':
        return []
    if field_type == 'boolean':
        return False
    if field_type in ('number', 'integer'):
        return 0

    enum_values = schema.get('enum')
    if isinstance(enum_values, list) and enum_values:
        return clone_json(enum_values[0])
    return ''


def schema_for_type(field_type: Optional[str]) -> Optional[Dict[str, Any]]:
    """Synthetic schema for a custom field added with an explicit type."""
    if not field_type:
        return None
    if field_type not in CUSTOM_FIELD_TYPES:
        logger.warning(f"Unknown custom field type '{field_type}', treating as string")
        return {'type': 'string'}
    return {'type': field_type}


def describe(schema: Optional[Dict[str, Any]]) -> str:
    description = schema.get('description') if schema else None
    if isinstance(description, str) and description.strip():
        return description
    return DEFAULT_DESCRIPTION


def child_schema(schema: Optional[Dict[str, Any]], key: str,
                 root_schema: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Resolved schema of an object member.

    Looks at "properties", then the first matching "patternProperties" entry,
    then a schema-valued "additionalProperties".
    """
    resolved = resolve_schema(schema, root_schema)
    if not isinstance(resolved, dict):
        return None

    properties = resolved.get('properties')
    if isinstance(properties, dict) and key in properties:
        return resolve_schema(properties[key], root_schema)

    pattern_properties = resolved.get('patternProperties')
    if isinstance(pattern_properties, dict):
        for pattern, candidate in pattern_properties.items():
            try:
                if re.search(pattern, key):
                    return resolve_schema(candidate, root_schema)
            except re.error as e:
                logger.warning(f"Ignoring invalid patternProperties regex {pattern!r}: {e}")

    additional = resolved.get('additionalProperties')
    if isinstance(additional, dict):
        return resolve_schema(additional, root_schema)

    return None


def items_schema(schema: Optional[Dict[str, Any]],
                 root_schema: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Resolved schema for array items (the first one for tuple-style items)."""
    resolved = resolve_schema(schema, root_schema)
    if not isinstance(resolved, dict):
        return None
    items = resolved.get('items')
    if isinstance(items, list):
        items = items[0] if items else None
    if not isinstance(items, dict):
        return None
    return resolve_schema(items, root_schema)


def is_secret(schema: Optional[Dict[str, Any]]) -> bool:
    return bool(schema and schema.get('x-secret'))


def enum_options(schema: Optional[Dict[str, Any]]) -> List[Any]:
    """Enum members as declared, so numeric and boolean choices keep their type."""
    values = schema.get('enum') if schema else None
    if not isinstance(values, list):
        return []
    return clone_json(values)


def get_object_from_path(root: Dict[str, Any], path: str) -> Optional[Dict[str, Any]]:
    """Walk a dotted path of object keys; returns the object found or None."""
    current: Any = root
    for segment in (s.strip() for s in path.split('.')):
        if not segment:
            continue
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current if isinstance(current, dict) else None


def key_source_options(schema: Optional[Dict[str, Any]], root_value: Dict[str, Any]) -> List[str]:
    """
    Choices for a string field whose schema names another object in the
    document via "x-key-source"; the keys of that object are offered.
    """
    source = schema.get('x-key-source') if schema else None
    if not isinstance(source, str) or not isinstance(root_value, dict):
        return []
    target = get_object_from_path(root_value, source)
    return list(target.keys()) if target else []


def select_options(schema: Optional[Dict[str, Any]], root_value: Dict[str, Any]) -> List[Any]:
    """Enum values if declared, otherwise the x-key-source keys."""
    return enum_options(schema) or key_source_options(schema, root_value)


def schema_options(root_schema: Optional[Dict[str, Any]],
                   keyword: Optional[str] = None,
                   existing_keys: Iterable[str] = ()) -> List[SchemaOption]:
    """
    Build the list of known top-level options from the root schema.

    Args:
        root_schema: Root schema document
        keyword: Optional case-insensitive filter on key or description
        existing_keys: Keys already present in the draft

    Returns:
        SchemaOption list in schema declaration order
    """
    if not root_schema or not isinstance(root_schema.get('properties'), dict):
        return []

    existing = set(existing_keys)
    options = []
    for key, node in root_schema['properties'].items():
        resolved = resolve_schema(node, root_schema)
        options.append(SchemaOption(
            key=key,
            description=describe(resolved),
            type_label=type_label(resolved),
            schema=resolved,
            already_exists=key in existing,
        ))

    needle = (keyword or '').strip().lower()
    if not needle:
        return options
    return [
        option for option in options
        if needle in option.key.lower() or needle in option.description.lower()
    ]
