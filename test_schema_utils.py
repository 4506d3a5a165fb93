"""
Unit tests for schema_utils module.
"""

import pytest

from config_editor.schema_utils import (
    DEFAULT_DESCRIPTION,
    child_schema,
    default_value,
    describe,
    effective_type,
    infer_value_type,
    is_compound_field,
    is_secret,
    items_schema,
    resolve_ref,
    resolve_schema,
    schema_for_type,
    schema_options,
    select_options,
    type_label,
)
from test_fixtures import SchemaFixtures


class TestResolveSchema:
    """Test cases for $ref resolution."""

    def test_ref_with_sibling_override(self):
        """Sibling keys are merged over the referenced definition."""
        root = {'definitions': {'Foo': {'type': 'string'}}}
        schema = {'$ref': '#/definitions/Foo', 'description': 'x'}

        assert resolve_schema(schema, root) == {'type': 'string', 'description': 'x'}

    def test_sibling_wins_over_definition(self):
        root = {'definitions': {'Foo': {'type': 'string', 'description': 'from def'}}}
        schema = {'$ref': '#/definitions/Foo', 'description': 'local'}

        assert resolve_schema(schema, root)['description'] == 'local'

    def test_unresolvable_ref_returns_node_unchanged(self):
        root = {'definitions': {}}
        schema = {'$ref': '#/definitions/Missing', 'description': 'x'}

        assert resolve_schema(schema, root) is schema

    def test_external_ref_not_followed(self):
        schema = {'$ref': 'other.json#/Foo'}

        assert resolve_schema(schema, {'Foo': {'type': 'string'}}) is schema

    def test_no_root_returns_node(self):
        schema = {'$ref': '#/definitions/Foo'}

        assert resolve_schema(schema, None) is schema

    def test_none_schema(self):
        assert resolve_schema(None, {'a': 1}) is None

    def test_pointer_unescaping(self):
        """~1 and ~0 are decoded in pointer segments."""
        root = {'definitions': {'a/b': {'type': 'number'}, 'c~d': {'type': 'boolean'}}}

        assert resolve_ref(root, '#/definitions/a~1b') == {'type': 'number'}
        assert resolve_ref(root, '#/definitions/c~0d') == {'type': 'boolean'}

    def test_single_hop_only(self):
        """A reference to a reference is not followed further."""
        root = {'definitions': {'A': {'$ref': '#/definitions/B'}, 'B': {'type': 'string'}}}

        resolved = resolve_schema({'$ref': '#/definitions/A'}, root)

        assert resolved == {'$ref': '#/definitions/B'}


class TestTypeClassification:
    """Test cases for effective type and compound detection."""

    def test_schema_type_takes_precedence(self):
        assert effective_type({'type': 'string'}, 42) == 'string'

    def test_first_type_of_list(self):
        assert effective_type({'type': ['array', 'null']}, None) == 'array'

    def test_inferred_from_value(self):
        assert effective_type(None, [1]) == 'array'
        assert effective_type({}, {'a': 1}) == 'object'
        assert effective_type(None, 'x') == 'string'
        assert effective_type(None, 1.5) == 'number'

    def test_boolean_is_not_a_number(self):
        assert infer_value_type(True) == 'boolean'
        assert infer_value_type(0) == 'number'

    def test_null_is_unknown(self):
        assert effective_type(None, None) is None

    def test_type_label_falls_back_to_string(self):
        assert type_label(None, None) == 'string'
        assert type_label({'type': 'integer'}) == 'integer'

    @pytest.mark.parametrize("schema,value,expected", [
        ({'type': 'object'}, None, True),
        ({'type': 'array'}, None, True),
        ({'type': 'string'}, {'a': 1}, False),
        (None, [1, 2], True),
        (None, 'text', False),
        (None, None, False),
    ])
    def test_is_compound_field(self, schema, value, expected):
        assert is_compound_field(schema, value) is expected


class TestDefaultValue:
    """Test cases for default synthesis of new fields."""

    def test_primitive_defaults(self):
        assert default_value({'type': 'array'}) == []
        assert default_value({'type': 'boolean'}) is False
        assert default_value({'type': 'object'}) == {}
        assert default_value({'type': 'number'}) == 0
        assert default_value({'type': 'integer'}) == 0

    def test_absent_schema(self):
        assert default_value(None) == ''
        assert default_value({}) == ''

    def test_explicit_default_is_cloned(self):
        schema = {'type': 'object', 'default': {'nested': [1]}}

        value = default_value(schema)
        value['nested'].append(2)

        assert schema['default'] == {'nested': [1]}

    def test_default_null_is_kept(self):
        assert default_value({'type': 'string', 'default': None}) is None

    def test_first_enum_value(self):
        assert default_value({'type': 'string', 'enum': ['a', 'b']}) == 'a'
        assert default_value({'enum': [3, 4]}) == 3

    def test_string_without_enum(self):
        assert default_value({'type': 'string'}) == ''

    def test_schema_for_custom_type(self):
        assert schema_for_type('array') == {'type': 'array'}
        assert schema_for_type(None) is None
        assert schema_for_type('date') == {'type': 'string'}


class TestChildSchemas:
    """Test cases for nested schema lookup."""

    def setup_method(self):
        self.root = SchemaFixtures.get_settings_schema()

    def test_property_with_ref(self):
        allow = child_schema(self.root, 'allow', self.root)

        assert allow['type'] == 'array'
        assert allow['description'] == 'Allowed commands'

    def test_additional_properties(self):
        profiles = child_schema(self.root, 'profiles', self.root)

        assert child_schema(profiles, 'anything', self.root) == {'type': 'string'}

    def test_pattern_properties(self):
        schema = {'patternProperties': {'^x-': {'type': 'number'}}}

        assert child_schema(schema, 'x-rate', None) == {'type': 'number'}
        assert child_schema(schema, 'rate', None) is None

    def test_unknown_key(self):
        assert child_schema(self.root, 'nope', self.root) is None

    def test_items_schema_resolves_ref(self):
        servers = child_schema(self.root, 'servers', self.root)

        assert items_schema(servers, self.root)['properties']['host']['default'] == 'localhost'

    def test_describe(self):
        assert describe({'description': 'Hello'}) == 'Hello'
        assert describe({'description': '  '}) == DEFAULT_DESCRIPTION
        assert describe(None) == DEFAULT_DESCRIPTION

    def test_is_secret(self):
        assert is_secret(child_schema(self.root, 'apiKey', self.root))
        assert not is_secret(child_schema(self.root, 'model', self.root))


class TestOptions:
    """Test cases for select options and schema option listing."""

    def setup_method(self):
        self.root = SchemaFixtures.get_settings_schema()

    def test_enum_options(self):
        assert select_options(child_schema(self.root, 'model', self.root), {}) == ['fast', 'smart']

    def test_enum_options_keep_member_types(self):
        schema = {'enum': [1, 3, True, None]}

        options = select_options(schema, {})

        assert options == [1, 3, True, None]
        assert [type(o) for o in options] == [int, int, bool, type(None)]

    def test_key_source_options(self):
        schema = child_schema(self.root, 'activeProfile', self.root)

        assert select_options(schema, {'profiles': {'work': 'w', 'home': 'h'}}) == ['work', 'home']
        assert select_options(schema, {}) == []

    def test_schema_options_in_declaration_order(self):
        options = schema_options(self.root)

        assert [o.key for o in options][:3] == ['model', 'timeout', 'verbose']

    def test_schema_options_marks_existing(self):
        options = {o.key: o for o in schema_options(self.root, existing_keys=['model'])}

        assert options['model'].already_exists
        assert not options['timeout'].already_exists

    def test_keyword_matches_key_or_description(self):
        by_key = [o.key for o in schema_options(self.root, 'TIME')]
        by_description = [o.key for o in schema_options(self.root, 'debug output')]

        assert by_key == ['timeout']
        assert by_description == ['verbose']

    def test_no_properties(self):
        assert schema_options({}) == []
        assert schema_options(None) == []
