"""Tests for encryptedssm.models."""

from __future__ import annotations

import pytest

from encryptedssm.models import ParameterRecord, zero_value


def _make_record(**kwargs) -> ParameterRecord:
    defaults = {
        "name": "/app/prod/db/password",
        "type": "SecureString",
        "encrypted_value": "AQICAHh=",
        "encryption_key": "alias/app",
    }
    defaults.update(kwargs)
    return ParameterRecord(**defaults)


class TestParameterRecord:
    def test_defaults(self):
        r = _make_record()
        assert r.tier == "Standard"
        assert r.description == ""
        assert r.data_type is None
        assert r.overwrite is None
        assert r.tags == {}
        assert r.version == 0

    def test_invalid_type_raises(self):
        with pytest.raises(ValueError, match="Invalid parameter type"):
            _make_record(type="Binary")

    def test_is_advanced(self):
        assert _make_record(tier="Advanced").is_advanced
        assert not _make_record().is_advanced

    def test_is_ec2_image(self):
        assert _make_record(data_type="aws:ec2:image").is_ec2_image
        assert not _make_record(data_type="text").is_ec2_image

    def test_tags_not_shared_between_instances(self):
        a = _make_record()
        b = _make_record()
        a.tags["team"] = "x"
        assert b.tags == {}

    def test_from_dict_ignores_unknown_keys(self):
        data = _make_record(version=3).to_dict()
        data["from_a_future_version"] = True
        r = ParameterRecord.from_dict(data)
        assert r == _make_record(version=3)


class TestZeroValue:
    def test_defaults(self):
        assert zero_value("description") == ""
        assert zero_value("tags") == {}
        assert zero_value("overwrite") is None
        assert zero_value("tier") == "Standard"

    def test_required_fields_are_empty(self):
        assert zero_value("name") == ""

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            zero_value("nope")
