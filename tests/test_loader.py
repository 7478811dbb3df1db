"""
Tests for StubDriver Expectation Loader

Tests loading expectations from YAML and JSON files.
"""

import json
import pytest
from pathlib import Path

from stubdriver.errors import MalformedSpecificationError
from stubdriver.mock.live import StaticLiveRequest
from stubdriver.mock.loader import ExpectationLoader, parse_pattern
from stubdriver.mock.matcher import RequestMatcher
from stubdriver.mock.request import Method

FIXTURES = Path(__file__).parent / 'fixtures'


class TestParsePattern:
    """Test file value to PatternValue conversion."""

    def test_string_is_literal(self):
        assert parse_pattern('abc', 'x').accepts('abc')
        assert not parse_pattern('a.c', 'x').accepts('abc')

    def test_regex_mapping(self):
        assert parse_pattern({'regex': 'a.c'}, 'x').accepts('abc')

    def test_number_is_literal(self):
        assert parse_pattern(10, 'x').accepts('10')

    def test_bad_mapping(self):
        with pytest.raises(MalformedSpecificationError, match='regex'):
            parse_pattern({'pattern': 'a'}, 'x')

    def test_null_value(self):
        with pytest.raises(MalformedSpecificationError, match='where'):
            parse_pattern(None, 'where')


class TestExpectationLoader:
    """Test ExpectationLoader."""

    def test_load_yaml(self):
        """Test loading the YAML fixture."""
        entries = ExpectationLoader(str(FIXTURES / 'users.yaml')).load()

        assert len(entries) == 2

        listing, create = entries
        assert listing.request.method is Method.GET
        assert listing.response.status == 200
        assert listing.response.content_type == 'application/json'
        assert listing.reusable is False

        assert create.request.method is Method.POST
        assert create.request.path.is_regex
        assert create.response.headers['Location'] == '/users/7'
        assert create.response.delay_ms == 10
        assert create.reusable is True

    def test_loaded_expectations_match(self):
        """Test loaded expectations match the traffic they describe."""
        listing, create = ExpectationLoader(str(FIXTURES / 'users.yaml')).load()
        matcher = RequestMatcher()

        live_listing = StaticLiveRequest(
            'GET', '/users',
            params={'page': ['1'], 'tag': ['blue', 'red']},
            headers={'Accept': 'application/json'}
        )
        live_create = StaticLiveRequest(
            'POST', '/users/7',
            content_type='application/json',
            body=b'{"name": "alice"}'
        )

        assert matcher.is_match(live_listing, listing.request) is True
        assert matcher.is_match(live_create, create.request) is True
        assert matcher.is_match(live_listing, create.request) is False

    def test_load_json_list(self, tmp_path):
        """Test a bare JSON list with a structured body."""
        path = tmp_path / 'stubs.json'
        path.write_text(json.dumps([
            {
                'request': {'path': '/health'},
                'response': {'body': {'status': 'up'}, 'content_type': 'application/json'}
            }
        ]))

        entries = ExpectationLoader(str(path)).load()

        assert len(entries) == 1
        assert entries[0].request.method is Method.GET
        assert json.loads(entries[0].response.body) == {'status': 'up'}

    def test_empty_file(self, tmp_path):
        """Test an empty YAML file yields no expectations."""
        path = tmp_path / 'empty.yaml'
        path.write_text('')

        assert ExpectationLoader(str(path)).load() == []

    def test_file_not_found(self):
        """Test loading a missing file."""
        with pytest.raises(FileNotFoundError):
            ExpectationLoader('nonexistent.yaml').load()

    def test_wrong_top_level_key(self, tmp_path):
        """Test a mapping without 'expectations'."""
        path = tmp_path / 'bad.yaml'
        path.write_text('stubs: []\n')

        with pytest.raises(MalformedSpecificationError, match='expectations'):
            ExpectationLoader(str(path)).load()

    def test_entry_without_request(self, tmp_path):
        """Test an entry missing its request."""
        path = tmp_path / 'bad.yaml'
        path.write_text('- response: {status: 200}\n')

        with pytest.raises(MalformedSpecificationError, match=r'bad.yaml\[0\]'):
            ExpectationLoader(str(path)).load()

    def test_body_needs_content_type(self, tmp_path):
        """Test a body without content type is malformed."""
        path = tmp_path / 'bad.yaml'
        path.write_text('- request: {path: /a, body: {content: x}}\n')

        with pytest.raises(MalformedSpecificationError, match='content_type'):
            ExpectationLoader(str(path)).load()

    def test_invalid_status(self, tmp_path):
        """Test response validation applies to loaded entries."""
        path = tmp_path / 'bad.yaml'
        path.write_text('- request: {path: /a}\n  response: {status: 42}\n')

        with pytest.raises(MalformedSpecificationError):
            ExpectationLoader(str(path)).load()
