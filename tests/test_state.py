"""Tests for encryptedssm.state."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from encryptedssm.errors import StateError
from encryptedssm.models import ParameterRecord
from encryptedssm.state import ResourceState, StateFile


def _make_record(**kwargs) -> ParameterRecord:
    defaults = {
        "name": "/app/secret",
        "type": "SecureString",
        "encrypted_value": "AQICAHh=",
        "encryption_key": "alias/app",
    }
    defaults.update(kwargs)
    return ParameterRecord(**defaults)


class TestResourceState:
    def test_for_create(self):
        state = ResourceState.for_create(_make_record())
        assert state.is_new_resource
        assert state.id == ""
        assert state.prior is None

    def test_for_existing_defaults_desired_to_prior(self):
        prior = _make_record()
        state = ResourceState.for_existing(prior)
        assert state.desired is prior
        assert state.id == "/app/secret"
        assert not state.is_new_resource

    def test_change_against_missing_prior_uses_zero_value(self):
        state = ResourceState.for_create(_make_record(description="d"))
        assert state.get_change("description") == ("", "d")
        assert state.has_change("description")
        assert not state.has_change("tags")
        assert not state.has_change("allowed_pattern")

    def test_change_against_prior(self):
        state = ResourceState.for_existing(
            _make_record(tags={"a": "1"}), _make_record(tags={"a": "2"})
        )
        assert state.get_change("tags") == ({"a": "1"}, {"a": "2"})
        assert not state.has_change("description")

    def test_clear(self):
        state = ResourceState.for_existing(_make_record())
        state.observed = _make_record()
        state.clear()
        assert state.id == ""
        assert state.observed is None


class TestStateFile:
    def test_missing_file_is_empty(self, tmp_path):
        assert StateFile(tmp_path / "state.json").load() == {}

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        records = {
            "b": _make_record(name="/app/b", tags={"team": "x"}, version=2),
            "a": _make_record(name="/app/a", overwrite=True, data_type="text"),
        }
        StateFile(path).save(records)
        assert StateFile(path).load() == records

    def test_file_layout(self, tmp_path):
        path = tmp_path / "state.json"
        StateFile(path).save({"b": _make_record(name="/app/b"), "a": _make_record(name="/app/a")})
        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert list(data["parameters"]) == ["a", "b"]
        assert data["parameters"]["a"]["name"] == "/app/a"

    def test_save_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "state.json"
        StateFile(path).save({"a": _make_record()})
        StateFile(path).save({})
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]
        assert StateFile(path).load() == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StateError, match="Failed to read"):
            StateFile(path).load()

    @pytest.mark.parametrize("payload", [{"version": 2, "parameters": {}}, {"parameters": {}}, []])
    def test_unsupported_version(self, tmp_path, payload):
        path = tmp_path / "state.json"
        path.write_text(json.dumps(payload))
        with pytest.raises(StateError, match="Unsupported state file version"):
            StateFile(path).load()

    def test_corrupt_record(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 1, "parameters": {"a": {"name": "/x"}}}))
        with pytest.raises(StateError, match="Corrupt record"):
            StateFile(path).load()

    def test_invalid_type_in_record(self, tmp_path):
        record = _make_record().to_dict()
        record["type"] = "Binary"
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 1, "parameters": {"a": record}}))
        with pytest.raises(StateError, match="Corrupt record"):
            StateFile(path).load()

    def test_failed_write_removes_temp_file(self, tmp_path):
        path = tmp_path / "state.json"
        StateFile(path).save({"a": _make_record()})
        with patch("encryptedssm.state.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StateError, match="Failed to write"):
                StateFile(path).save({})
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]
        assert set(StateFile(path).load()) == {"a"}
