import math

from release_readiness.config import DEFAULT_RELEASE_THRESHOLDS, load_release_config
from release_readiness.normalization import (
    as_number,
    normalize_email,
    normalize_version_tag,
    normalize_weight,
    sanitize_environment,
)
from utils.json_fields import dump_json, load_json_list, load_json_object


def test_version_tag_is_slugged_and_lowercased():
    assert normalize_version_tag("  Release 2024.10 RC1 ") == "release-2024.10-rc1"
    assert normalize_version_tag("v1.2.3+build/7") == "v1.2.3-build-7"
    assert normalize_version_tag("--v2--") == "v2"
    assert normalize_version_tag("   ") == ""
    assert normalize_version_tag(None) == ""


def test_environment_defaults_to_production():
    assert sanitize_environment(None) == "production"
    assert sanitize_environment("") == "production"
    assert sanitize_environment("  Staging_EU! ") == "stagingeu"
    assert sanitize_environment("pre-prod") == "pre-prod"


def test_email_is_trimmed_and_lowercased():
    assert normalize_email("  Ops@Example.COM ") == "ops@example.com"
    assert normalize_email("   ") is None
    assert normalize_email(None) is None


def test_weight_falls_back_to_one():
    assert normalize_weight(3) == 3
    assert normalize_weight("4") == 4
    assert normalize_weight(2.9) == 2
    assert normalize_weight(0) == 1
    assert normalize_weight(-5) == 1
    assert normalize_weight("heavy") == 1
    assert normalize_weight(None) == 1
    assert normalize_weight(True) == 1


def test_as_number_only_accepts_finite_numbers():
    assert as_number(0) == 0.0
    assert as_number("0.95") == 0.95
    assert as_number(" ") is None
    assert as_number("n/a") is None
    assert as_number(True) is None
    assert as_number(math.inf) is None
    assert as_number(float("nan")) is None


def test_json_fields_fall_back_on_corrupt_values():
    assert load_json_object("{not json") == {}
    assert load_json_object("[1, 2]") == {}
    assert load_json_object(None) == {}
    assert load_json_object('{"a": 1}') == {"a": 1}
    assert load_json_list('{"a": 1}') == []
    assert load_json_list("") == []
    assert load_json_list(b'["x"]') == ["x"]


def test_dump_json_serializes_datetimes():
    from datetime import datetime, timezone

    encoded = dump_json({"at": datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc)})
    assert load_json_object(encoded) == {"at": "2025-03-05T12:00:00+00:00"}


def test_release_config_reads_environment():
    config = load_release_config(
        {
            "RELEASE_REQUIRED_GATES": " security-scan, coverage ,,coverage",
            "RELEASE_THRESHOLDS": '{"minCoverage": 0.9}',
            "RELEASE_SNAPSHOT_PAGE_SIZE": "50",
        }
    )
    assert config.sorted_required_gates() == ["coverage", "security-scan"]
    assert config.thresholds_payload()["minCoverage"] == 0.9
    assert config.thresholds_payload()["maxErrorRate"] == DEFAULT_RELEASE_THRESHOLDS["maxErrorRate"]
    assert config.snapshot_page_size == 50


def test_release_config_ignores_malformed_values():
    config = load_release_config({"RELEASE_THRESHOLDS": "[1, 2]", "RELEASE_SNAPSHOT_PAGE_SIZE": "lots"})
    assert config.required_gates == frozenset()
    assert config.thresholds_payload() == DEFAULT_RELEASE_THRESHOLDS
    assert config.snapshot_page_size == 200
