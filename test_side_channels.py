"""
Unit tests for side_channels module.
"""

import pytest

from config_editor.exceptions import DuplicateKeyError, ValueParseError
from config_editor.side_channels import (
    EnvField,
    EnvMapChannel,
    KeyValueChannel,
    KeyValueEntry,
    SecretChannel,
    SideChannel,
    build_object,
    classify_scalar_transition,
    entries_from_object,
    looks_like_json,
    parse_entry_value,
)


def as_dicts(entries):
    return [entry.to_dict() for entry in entries]


class TestScalarTransition:
    """Test cases for emptiness-based classification."""

    def test_empty_to_value_is_added(self):
        assert as_dicts(classify_scalar_transition('auth.TOKEN', '', 'sk-123')) == [
            {'path': 'auth.TOKEN', 'type': 'added', 'after': 'sk-123'}
        ]

    def test_value_to_empty_is_removed(self):
        assert as_dicts(classify_scalar_transition('auth.TOKEN', 'sk-1', '')) == [
            {'path': 'auth.TOKEN', 'type': 'removed', 'before': 'sk-1'}
        ]

    def test_value_to_value_is_changed(self):
        assert as_dicts(classify_scalar_transition('env.X', 'a', 'b')) == [
            {'path': 'env.X', 'type': 'changed', 'before': 'a', 'after': 'b'}
        ]

    def test_none_treated_as_empty(self):
        assert classify_scalar_transition('env.X', None, '') == []


class TestSecretChannel:
    """Test cases for the single-secret channel."""

    def test_secret_transition(self):
        channel = SecretChannel('auth', 'auth.TOKEN', lambda: None)
        channel.load()

        channel.set_value('sk-123')

        assert as_dicts(channel.compute_diffs()) == [
            {'path': 'auth.TOKEN', 'type': 'added', 'after': 'sk-123'}
        ]
        assert channel.is_dirty

    def test_implements_protocol(self):
        assert isinstance(SecretChannel('auth', 'auth.TOKEN', lambda: None), SideChannel)

    def test_load_resets_draft(self):
        channel = SecretChannel('auth', 'auth.TOKEN', lambda: 'stored')
        channel.set_value('typed')

        assert channel.load() == 'stored'
        assert channel.value == 'stored'
        assert not channel.is_dirty

    def test_fetch_leaves_draft_untouched(self):
        channel = SecretChannel('auth', 'auth.TOKEN', lambda: 'stored')
        channel.set_value('typed')

        assert channel.fetch() == 'stored'
        assert channel.value == 'typed'
        assert channel.is_dirty

        channel.apply('stored')
        assert channel.value == 'stored'
        assert not channel.is_dirty

    def test_non_string_rejected(self):
        channel = SecretChannel('auth', 'auth.TOKEN', lambda: 42)

        with pytest.raises(TypeError):
            channel.load()

    def test_reset_and_commit(self):
        channel = SecretChannel('auth', 'auth.TOKEN', lambda: 'old')
        channel.load()

        channel.set_value('new')
        channel.reset()
        assert channel.value == 'old'

        channel.set_value('new')
        channel.commit()
        assert channel.original == 'new'
        assert channel.compute_diffs() == []
        assert not channel.is_dirty


class TestEnvMapChannel:
    """Test cases for the environment variable channel."""

    def setup_method(self):
        self.fields = [
            EnvField('api_key', 'GEMINI_API_KEY', secret=True),
            EnvField('model', 'GEMINI_MODEL', default='gemini-2.5-pro'),
        ]

    def test_missing_variables_take_defaults(self):
        channel = EnvMapChannel('env', self.fields, lambda: {})

        channel.load()

        assert channel.values == {'GEMINI_API_KEY': '', 'GEMINI_MODEL': 'gemini-2.5-pro'}

    def test_per_field_diffs(self):
        channel = EnvMapChannel('env', self.fields, lambda: {'GEMINI_MODEL': 'flash'})
        channel.load()

        channel.set_field('api_key', 'k-1')
        channel.set_field('GEMINI_MODEL', '')

        assert as_dicts(channel.compute_diffs()) == [
            {'path': 'env.GEMINI_API_KEY', 'type': 'added', 'after': 'k-1'},
            {'path': 'env.GEMINI_MODEL', 'type': 'removed', 'before': 'flash'},
        ]

    def test_unknown_field(self):
        channel = EnvMapChannel('env', self.fields, lambda: {})

        with pytest.raises(KeyError):
            channel.set_field('nope', 'x')

    def test_payload_and_commit(self):
        channel = EnvMapChannel('env', self.fields, lambda: {})
        channel.load()
        channel.set_field('api_key', 'k')

        assert channel.payload() == {'GEMINI_API_KEY': 'k', 'GEMINI_MODEL': 'gemini-2.5-pro'}
        channel.commit()
        assert channel.compute_diffs() == []
        assert channel.get('api_key') == 'k'


class TestKeyValueParsing:
    """Test cases for the JSON detection heuristic and object building."""

    @pytest.mark.parametrize("text,expected", [
        ('{"a": 1}', True),
        ('[1, 2]', True),
        ('"quoted"', True),
        ('42', True),
        ('-1.5', True),
        ('true', True),
        ('null', True),
        ('hello', False),
        ('', False),
        ('   ', False),
        ('True', False),
    ])
    def test_looks_like_json(self, text, expected):
        assert looks_like_json(text) is expected

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            parse_entry_value('NaN')

    def test_build_object(self):
        entries = [
            KeyValueEntry('name', 'plain text'),
            KeyValueEntry('limits', '{"rpm": 10}'),
            KeyValueEntry('count', '3'),
            KeyValueEntry('', 'ignored'),
            KeyValueEntry('empty', '  '),
        ]

        assert build_object(entries, 'config.json') == {
            'name': 'plain text',
            'limits': {'rpm': 10},
            'count': 3,
            'empty': '',
        }

    def test_empty_result_is_none(self):
        assert build_object([KeyValueEntry('', 'x')], 'config.json') is None

    def test_bad_json_names_key(self):
        with pytest.raises(ValueParseError) as exc_info:
            build_object([KeyValueEntry('limits', '{bad json')], 'config.json')

        assert exc_info.value.key == 'limits'
        assert 'limits' in exc_info.value.message

    def test_duplicate_keys(self):
        entries = [KeyValueEntry('a', '1'), KeyValueEntry(' a ', '2')]

        with pytest.raises(DuplicateKeyError) as exc_info:
            build_object(entries, 'config.json')

        assert exc_info.value.key == 'a'

    def test_digit_leading_text_is_parsed(self):
        """Text that starts like a number is treated as JSON and must parse."""
        with pytest.raises(ValueParseError):
            build_object([KeyValueEntry('version', '1.2.3')], 'config.json')

    def test_entries_from_object(self):
        entries = entries_from_object({'a': 'text', 'b': {'x': 1}, 'c': 2})

        assert entries[0] == KeyValueEntry('a', 'text')
        assert entries[1].value == '{\n  "x": 1\n}'
        assert entries[2].value == '2'
        assert entries_from_object(None) == []


class TestKeyValueChannel:
    """Test cases for the free-form key/value channel."""

    def test_bad_json_blocks_diffs(self):
        channel = KeyValueChannel('config.json', lambda: None)
        channel.load()

        channel.add_entry('limits', '{bad json')

        assert 'limits' in channel.error
        with pytest.raises(ValueParseError):
            channel.compute_diffs()

    def test_whole_document_added(self):
        channel = KeyValueChannel('config.json', lambda: None)
        channel.load()

        channel.add_entry('a', '1')

        assert as_dicts(channel.compute_diffs()) == [
            {'path': 'config.json', 'type': 'added', 'after': {'a': 1}}
        ]

    def test_whole_document_changed(self):
        channel = KeyValueChannel('config.json', lambda: {'a': 1, 'b': 'x'})
        channel.load()

        channel.update_entry(0, value='2')

        assert as_dicts(channel.compute_diffs()) == [
            {'path': 'config.json', 'type': 'changed', 'before': {'a': 1, 'b': 'x'},
             'after': {'a': 2, 'b': 'x'}}
        ]

    def test_clearing_all_entries_removes_document(self):
        channel = KeyValueChannel('config.json', lambda: {'a': 1})
        channel.load()

        channel.remove_entry(0)

        assert as_dicts(channel.compute_diffs()) == [
            {'path': 'config.json', 'type': 'removed', 'before': {'a': 1}}
        ]
        assert channel.payload() is None

    def test_untouched_document_has_no_diff(self):
        channel = KeyValueChannel('config.json', lambda: {'a': [1, 2], 'b': 'x'})
        channel.load()

        assert channel.compute_diffs() == []
        assert not channel.is_dirty

    def test_fixing_value_clears_error(self):
        channel = KeyValueChannel('config.json', lambda: None)
        channel.load()
        channel.add_entry('limits', '{bad json')

        channel.update_entry(0, value='{"rpm": 1}')

        assert channel.error is None
        assert channel.payload() == {'limits': {'rpm': 1}}

    def test_reset_restores_loaded_entries(self):
        channel = KeyValueChannel('config.json', lambda: {'a': 'x'})
        channel.load()
        channel.add_entry('b', 'y')

        channel.reset()

        assert channel.entries == [KeyValueEntry('a', 'x')]
        assert not channel.is_dirty

    def test_non_object_document(self):
        channel = KeyValueChannel('config.json', lambda: [1, 2])

        with pytest.raises(TypeError):
            channel.load()

    def test_commit_rebases(self):
        channel = KeyValueChannel('config.json', lambda: None)
        channel.load()
        channel.add_entry('a', 'text')

        channel.commit()

        assert channel.compute_diffs() == []
        assert channel.entries == [KeyValueEntry('a', 'text')]
