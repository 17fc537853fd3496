"""Tests for ai_chatter.properties"""

import json

import pytest

from ai_chatter.errors import ChatError, ErrorKind
from ai_chatter.properties import (
    InMemoryPropertyStore,
    JsonFilePropertyStore,
    Properties,
    PropertyStoreError,
    PropertyValueTooLargeError,
)


class TestInMemoryPropertyStore:
    def test_get_set_delete(self):
        store = InMemoryPropertyStore()
        store.set("A", "1")
        assert store.get("A") == "1"
        assert store.list_keys() == ["A"]
        store.delete("A")
        assert store.get("A") is None

    def test_delete_missing_is_noop(self):
        store = InMemoryPropertyStore()
        store.delete("missing")
        assert store.list_keys() == []

    def test_value_size_limit(self):
        store = InMemoryPropertyStore(max_value_size=4)
        store.set("A", "1234")
        with pytest.raises(PropertyValueTooLargeError):
            store.set("B", "12345")
        assert store.get("B") is None


class TestJsonFilePropertyStore:
    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "props.json")
        JsonFilePropertyStore(path).set("MODEL", "gpt-4")

        store = JsonFilePropertyStore(path)
        assert store.get("MODEL") == "gpt-4"
        assert store.list_keys() == ["MODEL"]

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFilePropertyStore(str(tmp_path / "none.json"))
        assert store.list_keys() == []
        assert store.get("A") is None

    def test_delete(self, tmp_path):
        path = str(tmp_path / "props.json")
        store = JsonFilePropertyStore(path)
        store.set("A", "1")
        store.set("B", "2")
        store.delete("A")
        with open(path) as f:
            assert json.load(f) == {"B": "2"}

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "props.json"
        path.write_text("{not json")
        with pytest.raises(PropertyStoreError):
            JsonFilePropertyStore(str(path)).get("A")

    def test_value_size_limit(self, tmp_path):
        store = JsonFilePropertyStore(str(tmp_path / "props.json"), max_value_size=3)
        with pytest.raises(PropertyValueTooLargeError):
            store.set("A", "abcd")


class TestProperties:
    @pytest.fixture
    def properties(self):
        return Properties(InMemoryPropertyStore({
            "NUM": "0.5",
            "BAD_NUM": "abc",
            "FLAG": "TRUE",
            "BAD_FLAG": "yes",
            "OBJ": '[{"role": "user", "content": "hi"}]',
            "BAD_OBJ": "[",
        }))

    def test_string(self, properties):
        assert properties.get_string("NUM") == "0.5"
        assert properties.get_string("MISSING") is None

    def test_number(self, properties):
        assert properties.get_number("NUM") == 0.5
        assert properties.get_number("MISSING") is None

    def test_malformed_number_is_configuration_error(self, properties):
        with pytest.raises(ChatError) as exc_info:
            properties.get_number("BAD_NUM")
        assert exc_info.value.kind is ErrorKind.CONFIGURATION

    def test_boolean(self, properties):
        assert properties.get_boolean("FLAG") is True
        assert properties.get_boolean("MISSING") is None
        with pytest.raises(ChatError):
            properties.get_boolean("BAD_FLAG")

    def test_json(self, properties):
        assert properties.get_json("OBJ") == [{"role": "user", "content": "hi"}]
        assert properties.get_json("MISSING") is None
        with pytest.raises(ChatError):
            properties.get_json("BAD_OBJ")

    def test_set_json_writes_through(self, properties):
        properties.set_json("NEW", {"a": 1})
        assert properties.store.get("NEW") == '{"a":1}'
        assert properties.get_json("NEW") == {"a": 1}

    def test_delete_reports_existence(self, properties):
        assert properties.delete("NUM") is True
        assert properties.get_string("NUM") is None
        assert properties.delete("NUM") is False

    def test_reads_are_cached(self, properties):
        assert properties.get_string("NUM") == "0.5"
        properties.store.set("NUM", "0.7")
        assert properties.get_string("NUM") == "0.5"
        properties.forget("NUM")
        assert properties.get_string("NUM") == "0.7"

    def test_keys_with_prefix(self, properties):
        assert sorted(properties.keys_with_prefix("BAD_")) == ["BAD_FLAG", "BAD_NUM", "BAD_OBJ"]
