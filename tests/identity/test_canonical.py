"""Tests for canonical JSON signing targets."""

from __future__ import annotations

import json

import pytest

from hushnet_registry.identity.canonical import (
    canonical_json,
    canonical_json_bytes,
    heartbeat_message,
    registration_message,
)


class TestCanonicalJson:
    """Tests for canonical_json."""

    def test_sorts_keys(self):
        assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_sorts_nested_keys(self):
        value = {"z": {"y": 1, "x": [{"d": 1, "c": 2}]}, "a": None}
        assert canonical_json(value) == '{"a":null,"z":{"x":[{"c":2,"d":1}],"y":1}}'

    def test_array_order_preserved(self):
        assert canonical_json([3, 1, 2]) == "[3,1,2]"

    def test_key_order_does_not_matter(self):
        first = json.loads('{"name": "n1", "features": {"tor": true, "relay": false}, "host": "h1"}')
        second = json.loads('{"host":"h1","features":{"relay":false,"tor":true},"name":"n1"}')
        assert canonical_json(first) == canonical_json(second)

    def test_whitespace_in_source_does_not_matter(self):
        spaced = json.loads('{\n  "a" : [ 1 , 2 ],\n  "b" : "x"\n}')
        assert canonical_json(spaced) == '{"a":[1,2],"b":"x"}'

    def test_round_trips_structurally(self):
        value = {"name": "n1", "list": [1, 2.5, "x", None, True], "nested": {"k": {}}}
        assert json.loads(canonical_json(value)) == value

    def test_non_ascii_not_escaped(self):
        assert canonical_json({"name": "nœud-東京"}) == '{"name":"nœud-東京"}'

    def test_string_escapes(self):
        assert canonical_json('a"b\\c\n') == '"a\\"b\\\\c\\n"'

    def test_scalars(self):
        assert canonical_json(None) == "null"
        assert canonical_json(True) == "true"
        assert canonical_json(42) == "42"
        assert canonical_json(0.1) == "0.1"

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1e-7, "1e-7"),
            (1e16, "1e16"),
            (1e21, "1e21"),
            (1.5e16, "1.5e16"),
            (-2.5e-8, "-2.5e-8"),
            (1e-5, "0.00001"),
            (1e15, "1000000000000000.0"),
            (123.0, "123.0"),
            (0.0, "0.0"),
            (-0.0, "-0.0"),
            (2.5, "2.5"),
        ],
    )
    def test_float_layout_matches_serde_json(self, value, expected):
        assert canonical_json(value) == expected

    def test_exponent_floats_inside_payload(self):
        assert canonical_json({"y": 1e16, "x": 1e-7}) == '{"x":1e-7,"y":1e16}'

    def test_int_and_bool_distinct(self):
        assert canonical_json([1, True, False, 0]) == "[1,true,false,0]"

    def test_rejects_unknown_types(self):
        with pytest.raises(TypeError):
            canonical_json({"when": object()})

    def test_empty_containers(self):
        assert canonical_json({}) == "{}"
        assert canonical_json([]) == "[]"

    def test_tuple_serialized_as_array(self):
        assert canonical_json({"a": (1, 2)}) == '{"a":[1,2]}'

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            canonical_json({"x": float("nan")})

    def test_rejects_infinity(self):
        with pytest.raises(ValueError):
            canonical_json([float("inf")])

    def test_rejects_non_string_keys(self):
        with pytest.raises(TypeError):
            canonical_json({1: "a"})

    def test_bytes_are_utf8(self):
        assert canonical_json_bytes({"n": "é"}) == '{"n":"é"}'.encode("utf-8")


class TestSigningTargets:
    """Tests for the registration and heartbeat messages."""

    def test_registration_message_appends_nonce(self):
        payload = {"host": "h1", "name": "n1"}
        assert registration_message(payload, "abc") == b'{"host":"h1","name":"n1"}abc'

    def test_registration_message_independent_of_key_order(self):
        a = registration_message({"name": "n1", "host": "h1"}, "nonce")
        b = registration_message({"host": "h1", "name": "n1"}, "nonce")
        assert a == b

    def test_heartbeat_message_is_raw_concatenation(self):
        assert heartbeat_message("h1", "n0nce") == b"h1n0nce"
