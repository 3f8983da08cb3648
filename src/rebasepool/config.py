"""
rebasepool/config.py

Configuration constants and data classes for rebasepool.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


# Fixed-point scale for the reward-per-token index
PRECISION = 10**18

# Default emission period (one day, same as the reference deployment)
DEFAULT_REWARDS_DURATION = 86400

# Reflection token fees (percent of each taxed transfer)
DEFAULT_TAX_FEE = 5                 # redistributed to every holder
DEFAULT_BURN_FEE = 5                # removed from supply

# Default pool address used when none is supplied
DEFAULT_POOL_ADDRESS = "pool"

# REST API
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8089

# PubSub topic prefix for committed pool events
EVENT_TOPIC_PREFIX = "rebasepool/events/"

# Events held for the PubSub publisher while it is unreachable
DEFAULT_MAX_PENDING_EVENTS = 10000

# Prometheus metric name prefix
METRICS_PREFIX = "rebasepool"


@dataclass
class PoolConfig:
    """Deployment parameters for a StakingPool."""
    owner: str
    rewards_duration: int = DEFAULT_REWARDS_DURATION
    pool_address: str = DEFAULT_POOL_ADDRESS
    staked_token_symbol: str = "STAKED"
    reward_token_symbol: str = "REWARD"

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot back a pool."""
        if not self.owner:
            raise ValueError("owner is required")
        if not self.pool_address:
            raise ValueError("pool_address is required")
        if int(self.rewards_duration) <= 0:
            raise ValueError(f"rewards_duration must be positive, got {self.rewards_duration}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PoolConfig":
        """Create from dictionary."""
        return cls(
            owner=data.get("owner", ""),
            rewards_duration=int(data.get("rewards_duration", DEFAULT_REWARDS_DURATION)),
            pool_address=data.get("pool_address", DEFAULT_POOL_ADDRESS),
            staked_token_symbol=data.get("staked_token_symbol", "STAKED"),
            reward_token_symbol=data.get("reward_token_symbol", "REWARD"),
        )
