"""
Marketplace configuration.

Values come from constructor arguments or GIGMARKET_* environment
variables via MarketConfig.from_env().
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "GIGMARKET_"


@dataclass
class MarketConfig:
    """Tunables for the marketplace core."""

    # Matching
    ranking_timeout_seconds: float = 10.0
    recommendation_min_rank: int = 6
    max_proposals_ranked: int = 50

    # Lifecycle
    auto_start_work: bool = False

    # Ledger
    platform_fee_rate: Decimal = Decimal("0")
    platform_account_id: str = "platform"
    currency: str = "USD"

    def __post_init__(self):
        if not isinstance(self.platform_fee_rate, Decimal):
            self.platform_fee_rate = Decimal(str(self.platform_fee_rate))
        if self.ranking_timeout_seconds <= 0:
            raise ValueError("ranking_timeout_seconds must be positive")
        if not 1 <= self.recommendation_min_rank <= 10:
            raise ValueError("recommendation_min_rank must be between 1 and 10")
        if self.max_proposals_ranked < 1:
            raise ValueError("max_proposals_ranked must be at least 1")
        if not Decimal("0") <= self.platform_fee_rate < Decimal("1"):
            raise ValueError("platform_fee_rate must be in [0, 1)")
        if not self.platform_account_id:
            raise ValueError("platform_account_id cannot be empty")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "MarketConfig":
        """Build config from GIGMARKET_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        def _get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None and value.strip() else None

        try:
            if (v := _get("RANKING_TIMEOUT_SECONDS")) is not None:
                kwargs["ranking_timeout_seconds"] = float(v)
            if (v := _get("RECOMMENDATION_MIN_RANK")) is not None:
                kwargs["recommendation_min_rank"] = int(v)
            if (v := _get("MAX_PROPOSALS_RANKED")) is not None:
                kwargs["max_proposals_ranked"] = int(v)
            if (v := _get("PLATFORM_FEE_RATE")) is not None:
                kwargs["platform_fee_rate"] = Decimal(v)
        except (ValueError, InvalidOperation) as e:
            raise ValueError(f"Invalid {ENV_PREFIX}* setting: {e}") from e

        if (v := _get("AUTO_START_WORK")) is not None:
            kwargs["auto_start_work"] = v.lower() in ("1", "true", "yes", "on")
        if (v := _get("PLATFORM_ACCOUNT_ID")) is not None:
            kwargs["platform_account_id"] = v
        if (v := _get("CURRENCY")) is not None:
            kwargs["currency"] = v.upper()

        config = cls(**kwargs)
        logger.debug("Loaded market config from environment: %s", config)
        return config
