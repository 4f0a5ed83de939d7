"""
Tests for threshold configuration loading.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from civicops.config.loader import MASTER_ENV_VAR, load_thresholds
from civicops.validation import ConfigurationError, validate_thresholds


@pytest.fixture
def thresholds_file(tmp_path: Path) -> Path:
    path = tmp_path / "thresholds.yaml"
    path.write_text("thresholds:\n  p95_latency_ms: 450\n  memory_mb: 256\n", encoding="utf-8")
    return path


class TestLoadThresholds:
    """Tests for load_thresholds."""

    def test_defaults(self, tmp_path):
        """Test defaults when no file or env is present."""
        thresholds = load_thresholds(tmp_path / "missing.yaml", env={})

        assert thresholds.error_rate_percent == 5
        assert thresholds.p95_latency_ms == 300
        assert thresholds.memory_mb == 100
        assert thresholds.cache_hit_rate_percent == 70
        assert thresholds.queue_depth == 50

    def test_yaml_file(self, thresholds_file):
        thresholds = load_thresholds(thresholds_file, env={})

        assert thresholds.p95_latency_ms == 450
        assert thresholds.memory_mb == 256
        assert thresholds.error_rate_percent == 5

    def test_bare_mapping_file(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("queue_depth: 10\n", encoding="utf-8")

        assert load_thresholds(path, env={}).queue_depth == 10

    def test_empty_file(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("", encoding="utf-8")

        assert load_thresholds(path, env={}).memory_mb == 100

    def test_empty_thresholds_section(self, tmp_path):
        """Test an empty thresholds: section falls back to defaults."""
        path = tmp_path / "t.yaml"
        path.write_text("thresholds:\n", encoding="utf-8")

        assert load_thresholds(path, env={}).p95_latency_ms == 300

    def test_thresholds_section_not_mapping(self, tmp_path):
        """Test a list under thresholds: is a configuration error."""
        path = tmp_path / "t.yaml"
        path.write_text("thresholds:\n  - 1\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_thresholds(path, env={})

    def test_master_env_overrides_file(self, thresholds_file):
        env = {MASTER_ENV_VAR: json.dumps({"memory_mb": 1024})}

        thresholds = load_thresholds(thresholds_file, env=env)

        assert thresholds.memory_mb == 1024
        assert thresholds.p95_latency_ms == 450

    def test_individual_env_overrides_master(self, thresholds_file):
        env = {
            MASTER_ENV_VAR: json.dumps({"memory_mb": 1024}),
            "CIVICOPS_MEMORY_MB": "2048",
            "CIVICOPS_ERROR_RATE_PERCENT": "2.5",
        }

        thresholds = load_thresholds(thresholds_file, env=env)

        assert thresholds.memory_mb == 2048
        assert thresholds.error_rate_percent == 2.5

    def test_invalid_master_json(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_thresholds(tmp_path / "missing.yaml", env={MASTER_ENV_VAR: "{nope"})

    def test_invalid_env_number(self, tmp_path):
        with pytest.raises(ConfigurationError, match="CIVICOPS_QUEUE_DEPTH"):
            load_thresholds(tmp_path / "missing.yaml", env={"CIVICOPS_QUEUE_DEPTH": "deep"})

    def test_unknown_field(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("disk_mb: 5\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="disk_mb"):
            load_thresholds(path, env={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("memory_mb: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_thresholds(path, env={})

    def test_non_numeric_value(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("memory_mb: plenty\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_thresholds(path, env={})


class TestValidateThresholds:
    """Tests for the threshold sanity report."""

    def test_defaults_clean(self):
        values = {
            "error_rate_percent": 5,
            "p95_latency_ms": 300,
            "memory_mb": 100,
            "cache_hit_rate_percent": 70,
            "queue_depth": 50,
        }

        assert validate_thresholds(values) == []

    def test_reports_without_fixing(self):
        values = {"memory_mb": -1, "error_rate_percent": 0, "cache_hit_rate_percent": 150}

        issues = validate_thresholds(values)

        assert any("memory_mb is negative" in i for i in issues)
        assert any("error_rate_percent is 0" in i for i in issues)
        assert any("cache_hit_rate_percent above 100" in i for i in issues)
        assert values["memory_mb"] == -1
