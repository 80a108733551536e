"""Tests for YAML configuration loading.

Covers the shipped default set, validation failures and the
INVOICE_CONFIG_TRACE audit log entry emitted by get_active_config().
"""
from __future__ import annotations

from decimal import Decimal

import pytest
import yaml

from invoice_config import get_active_config
from invoice_config.loader import (
    compute_checksum,
    load_configuration_set,
    parse_configuration_set,
)
from invoice_kernel.domain.settings import DEFAULT_SETTINGS
from invoice_kernel.domain.tax import TaxBucket


def _valid_data() -> dict:
    return {
        "config_id": "test",
        "version": 2,
        "tax_buckets": {
            "normal": 20,
            "reduced_1": 10,
            "reduced_2": 13,
            "zero": 0,
            "special": 19,
        },
    }


class TestDefaultSet:
    def test_default_set_loads(self):
        config_set = get_active_config()

        assert config_set.config_id == "default"
        assert config_set.version == 1
        assert config_set.settings.strict_tax_rates is True
        assert config_set.settings.lock.timeout_ms == 5000

    def test_default_set_matches_kernel_defaults(self):
        settings = get_active_config().settings

        assert dict(settings.tax_bucket_rates) == dict(DEFAULT_SETTINGS.tax_bucket_rates)
        assert settings.labels == DEFAULT_SETTINGS.labels

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64


class TestParsing:
    def test_rates_parsed_as_decimals(self):
        settings = parse_configuration_set(_valid_data()).settings

        assert settings.tax_bucket_rates[TaxBucket.REDUCED_2] == Decimal("13")
        assert all(isinstance(r, Decimal) for r in settings.tax_bucket_rates.values())

    def test_optional_sections_default(self):
        config_set = parse_configuration_set(_valid_data())

        assert config_set.settings.strict_tax_rates is True
        assert config_set.settings.lock.timeout_ms is None
        assert config_set.settings.labels == DEFAULT_SETTINGS.labels

    def test_label_override_keeps_other_defaults(self):
        data = _valid_data()
        data["labels"] = {"cancellation_prefix": "Storno "}

        labels = parse_configuration_set(data).settings.labels

        assert labels.cancellation_label("Coffee") == "Storno Coffee"
        assert labels.cash_deposit == DEFAULT_SETTINGS.labels.cash_deposit

    def test_checksum_changes_with_content(self):
        data = _valid_data()
        changed = _valid_data()
        changed["strict_tax_rates"] = False

        assert compute_checksum(data) != compute_checksum(changed)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        data = _valid_data()
        data["strict_tax_rates"] = False
        path.write_text(yaml.safe_dump(data))

        config_set = load_configuration_set(path)

        assert config_set.config_id == "test"
        assert config_set.settings.strict_tax_rates is False


class TestValidation:
    def test_unknown_bucket_rejected(self):
        data = _valid_data()
        data["tax_buckets"]["luxury"] = 30

        with pytest.raises(ValueError, match="Unknown tax bucket"):
            parse_configuration_set(data)

    def test_missing_bucket_rejected(self):
        data = _valid_data()
        del data["tax_buckets"]["special"]

        with pytest.raises(ValueError, match="Missing tax buckets: special"):
            parse_configuration_set(data)

    def test_duplicate_rates_rejected(self):
        data = _valid_data()
        data["tax_buckets"]["special"] = 20

        with pytest.raises(ValueError, match="distinct rates"):
            parse_configuration_set(data)

    def test_negative_rate_rejected(self):
        data = _valid_data()
        data["tax_buckets"]["zero"] = -1

        with pytest.raises(ValueError, match="negative rate"):
            parse_configuration_set(data)

    def test_non_numeric_rate_rejected(self):
        data = _valid_data()
        data["tax_buckets"]["normal"] = "twenty"

        with pytest.raises(ValueError, match="non-numeric"):
            parse_configuration_set(data)

    @pytest.mark.parametrize("timeout", [0, -5, "fast", True])
    def test_bad_lock_timeout_rejected(self, timeout):
        data = _valid_data()
        data["lock"] = {"timeout_ms": timeout}

        with pytest.raises(ValueError, match="timeout_ms"):
            parse_configuration_set(data)

    def test_non_bool_strict_rejected(self):
        data = _valid_data()
        data["strict_tax_rates"] = "yes"

        with pytest.raises(ValueError, match="strict_tax_rates"):
            parse_configuration_set(data)

    def test_missing_config_id_raises_key_error(self):
        data = _valid_data()
        del data["config_id"]

        with pytest.raises(KeyError):
            parse_configuration_set(data)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestConfigTrace:
    def test_trace_logged(self, captured_logs):
        config_set = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "INVOICE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "default"
        assert traces[0]["checksum"] == config_set.checksum
        assert traces[0]["strict_tax_rates"] is True
