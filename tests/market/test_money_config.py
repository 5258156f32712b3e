"""Tests for money helpers and MarketConfig."""

from decimal import Decimal

import pytest

from gigmarket.config import MarketConfig
from gigmarket.money import fee_cents, from_cents, to_cents


class TestToCents:
    def test_decimal(self):
        assert to_cents(Decimal("500.00")) == 50000

    def test_int_and_str(self):
        assert to_cents(12) == 1200
        assert to_cents("0.01") == 1

    def test_float_rejected(self):
        with pytest.raises(ValueError, match="float"):
            to_cents(1.5)

    def test_three_decimal_places_rejected(self):
        with pytest.raises(ValueError, match="two decimal places"):
            to_cents(Decimal("1.005"))

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            to_cents("ten dollars")

    def test_infinity_rejected(self):
        with pytest.raises(ValueError):
            to_cents(Decimal("Infinity"))

    def test_negative_allowed(self):
        """Sign is the caller's business; ledger debits are negative."""
        assert to_cents(Decimal("-2.50")) == -250


class TestFromCents:
    def test_two_places(self):
        assert from_cents(50000) == Decimal("500.00")
        assert str(from_cents(1)) == "0.01"

    def test_negative(self):
        assert from_cents(-250) == Decimal("-2.50")


class TestFeeCents:
    def test_zero_rate(self):
        assert fee_cents(50000, Decimal("0")) == 0

    def test_rounds_down(self):
        # 10% of $0.05 is half a cent
        assert fee_cents(5, Decimal("0.10")) == 0
        assert fee_cents(50000, Decimal("0.10")) == 5000


class TestMarketConfig:
    def test_defaults(self):
        config = MarketConfig()
        assert config.ranking_timeout_seconds == 10.0
        assert config.recommendation_min_rank == 6
        assert config.platform_fee_rate == Decimal("0")
        assert config.auto_start_work is False

    def test_fee_rate_coerced_to_decimal(self):
        config = MarketConfig(platform_fee_rate="0.05")
        assert config.platform_fee_rate == Decimal("0.05")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ranking_timeout_seconds": 0},
            {"recommendation_min_rank": 0},
            {"recommendation_min_rank": 11},
            {"max_proposals_ranked": 0},
            {"platform_fee_rate": Decimal("1")},
            {"platform_fee_rate": Decimal("-0.1")},
            {"platform_account_id": ""},
            {"currency": "DOLLARS"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            MarketConfig(**kwargs)

    def test_from_env(self):
        config = MarketConfig.from_env(
            {
                "GIGMARKET_RANKING_TIMEOUT_SECONDS": "2.5",
                "GIGMARKET_RECOMMENDATION_MIN_RANK": "8",
                "GIGMARKET_AUTO_START_WORK": "yes",
                "GIGMARKET_PLATFORM_FEE_RATE": "0.1",
                "GIGMARKET_CURRENCY": "eur",
            }
        )
        assert config.ranking_timeout_seconds == 2.5
        assert config.recommendation_min_rank == 8
        assert config.auto_start_work is True
        assert config.platform_fee_rate == Decimal("0.1")
        assert config.currency == "EUR"

    def test_from_env_blank_values_keep_defaults(self):
        config = MarketConfig.from_env({"GIGMARKET_MAX_PROPOSALS_RANKED": "  "})
        assert config.max_proposals_ranked == 50

    def test_from_env_bad_number(self):
        with pytest.raises(ValueError, match="Invalid GIGMARKET_"):
            MarketConfig.from_env({"GIGMARKET_RECOMMENDATION_MIN_RANK": "high"})

    def test_from_env_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("GIGMARKET_PLATFORM_ACCOUNT_ID", "house")
        assert MarketConfig.from_env().platform_account_id == "house"
