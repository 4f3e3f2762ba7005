"""
Tests for billing policy configuration.

Covers:
- Packaged defaults
- YAML parsing, partial documents and rejected values
- Active-config resolution (explicit path, environment, cache)
- RENTAL_CONFIG_TRACE emission
"""

from decimal import Decimal

import pytest
import yaml

from rental_config import (
    CONFIG_ENV_VAR,
    BillingPolicy,
    get_active_config,
    load_billing_policy,
    reset_active_config,
)
from rental_config.loader import compute_checksum, parse_billing_policy, parse_decimal


def write_policy(tmp_path, data):
    path = tmp_path / "billing.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults_match_schema(self):
        assert load_billing_policy() == BillingPolicy()

    def test_default_values(self):
        policy = BillingPolicy()

        assert policy.vat_rate == Decimal("0.20")
        assert policy.due_soon_window_days == 3
        assert policy.severe_overdue_days == 5
        assert policy.catalog_price_band == Decimal("0.5")
        assert policy.enforce_catalog_band is False
        assert policy.default_cycle_days == 30

    def test_policy_is_immutable(self):
        with pytest.raises(AttributeError):
            BillingPolicy().vat_rate = Decimal("0.1")


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"vat_rate": Decimal("-0.1")},
            {"currency": ""},
            {"due_soon_window_days": -1},
            {"severe_overdue_days": 0},
            {"catalog_price_band": Decimal("1.5")},
            {"default_cycle_days": 0},
            {"invoice_lookahead_days": -3},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BillingPolicy(**kwargs)


class TestParsing:
    def test_partial_document(self):
        policy = parse_billing_policy({"overdue": {"due_soon_window_days": 7}})

        assert policy.due_soon_window_days == 7
        assert policy.severe_overdue_days == 5

    def test_full_document(self):
        policy = parse_billing_policy(
            {
                "version": 2,
                "tax": {"vat_rate": "0.10", "currency": "EUR"},
                "pricing": {"catalog_price_band": "0.25", "enforce_catalog_band": True},
                "schedule": {"default_cycle_days": 15, "invoice_lookahead_days": 5},
            }
        )

        assert policy.version == "2"
        assert policy.vat_rate == Decimal("0.10")
        assert policy.currency == "EUR"
        assert policy.enforce_catalog_band is True
        assert policy.default_cycle_days == 15
        assert policy.invoice_lookahead_days == 5

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="Unknown billing policy sections"):
            parse_billing_policy({"discounts": {}})

    @pytest.mark.parametrize("value", ["false", "no", 0, 1, None])
    def test_enforce_flag_must_be_boolean(self, value):
        with pytest.raises(ValueError, match="pricing.enforce_catalog_band"):
            parse_billing_policy({"pricing": {"enforce_catalog_band": value}})

    def test_bad_decimal_rejected(self):
        with pytest.raises(ValueError, match="tax.vat_rate"):
            parse_decimal("twenty", "tax.vat_rate")

    def test_checksum_stable(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestActiveConfig:
    def test_explicit_path(self, tmp_path):
        path = write_policy(tmp_path, {"tax": {"vat_rate": "0.07"}})

        assert get_active_config(path).vat_rate == Decimal("0.07")

    def test_environment_override(self, tmp_path, monkeypatch):
        path = write_policy(tmp_path, {"overdue": {"severe_overdue_days": 10}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_active_config().severe_overdue_days == 10

    def test_cached_until_reset(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        first = get_active_config()
        path = write_policy(tmp_path, {"overdue": {"severe_overdue_days": 10}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_active_config() is first
        reset_active_config()
        assert get_active_config().severe_overdue_days == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_billing_policy(tmp_path / "absent.yaml")

    def test_config_trace_emitted(self, tmp_path, captured_logs):
        path = write_policy(tmp_path, {"version": "7"})

        load_billing_policy(path)

        traces = [r for r in captured_logs() if r["message"] == "RENTAL_CONFIG_TRACE"]
        assert traces[-1]["config_version"] == "7"
        assert traces[-1]["config_path"] == str(path)
        assert len(traces[-1]["checksum"]) == 64
