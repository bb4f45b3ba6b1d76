"""
Tests for message shape verification.
"""
import pytest

from wordcoop.webrtc.schema import FieldKind, MessageSchema, kind_of


def test_object_with_same_fields_matches():
    schema = MessageSchema.from_sample({"a": 1, "b": "x"})
    assert schema.matches({"a": 0, "b": ""})


def test_object_extra_field_fails():
    schema = MessageSchema.from_sample({"a": 1, "b": "x"})
    assert not schema.matches({"a": 0, "b": "", "c": 1})


def test_object_missing_field_fails():
    schema = MessageSchema.from_sample({"a": 1, "b": "x"})
    assert not schema.matches({"a": 0})


def test_object_field_type_mismatch_fails():
    schema = MessageSchema.from_sample({"a": 1, "b": "x"})
    assert not schema.matches({"a": "0", "b": ""})


def test_array_against_non_array_fails():
    schema = MessageSchema.from_sample(["a", "b"])
    assert not schema.matches({"0": "a", "1": "b"})
    assert not schema.matches("ab")
    assert schema.matches(["c", "d"])
    assert not schema.matches(["c"])


def test_booleans_are_not_numbers():
    assert kind_of(True) == FieldKind.BOOLEAN
    assert not MessageSchema.from_sample(0).matches(True)
    assert not MessageSchema.from_sample(True).matches(1)


def test_primitive_samples():
    assert MessageSchema.from_sample("").matches("q")
    assert MessageSchema.from_sample(0).matches(2.5)
    assert not MessageSchema.from_sample("").matches(None)


def test_null_sample_rejected():
    with pytest.raises(ValueError):
        MessageSchema.from_sample(None)


def test_unsupported_value_does_not_match():
    assert not MessageSchema.from_sample("").matches(object())


def test_describe():
    schema = MessageSchema.from_sample({"a": 1})
    assert schema.describe() == {"kind": "object", "fields": {"a": "number"}}


def test_nested_null_array_and_object_are_distinct_kinds():
    schema = MessageSchema.from_sample({"pos": {"x": 1}, "tags": [], "hint": None})
    assert schema.matches({"pos": {"y": 2}, "tags": ["a"], "hint": None})
    assert not schema.matches({"pos": None, "tags": [], "hint": None})
    assert not schema.matches({"pos": [], "tags": [], "hint": None})
    assert not schema.matches({"pos": {}, "tags": {}, "hint": None})
    assert not schema.matches({"pos": {}, "tags": [], "hint": {}})
