"""
rebasepool - Reward-streaming staking pool over a rebasing staked asset

Built from two cooperating parts:
- Reward Accumulator: streams a notified reward linearly over an emission
  period through a reward-per-token index
- Elastic Share Ledger: tracks stakes as shares priced against the pool's
  live holdings, so passive growth of a fee-redistributing asset accrues to
  existing stakers

Usage:
    from rebasepool import StakingPool, ReflectionToken, StandardToken, ManualClock

    clock = ManualClock(1_700_000_000)
    staked = ReflectionToken("STAKED", supply=10**24, holder="alice")
    reward = StandardToken("REWARD", supply=10**24, holder="alice")

    pool = StakingPool(staked, reward, 86400, owner="alice", clock=clock)
    staked.exclude_from_fee(pool.address)

    pool.set_reward_distribution("alice", "alice")
    reward.transfer("alice", pool.address, 10**21)
    pool.notify_reward_amount("alice", 10**21)

    staked.approve("alice", pool.address, 10**12)
    pool.stake("alice", 10**12)

    clock.advance(3600)
    pool.earned("alice")
    pool.exit("alice")

REST API Usage:
    from rebasepool.api import PoolAPI

    api = PoolAPI(pool, host="0.0.0.0", port=8089)
    trio.run(api.start)
"""

from .pool import StakingPool, GuardState
from .state import PoolState, AccountState
from .tokens import TokenLedger, StandardToken, ReflectionToken
from .access import AccessControl, ROLE_OWNER, ROLE_DISTRIBUTION
from .clock import SystemClock, ManualClock
from .events import PoolEvent, EventLog, EventBroadcaster
from .metrics import PoolMetricsCollector
from .config import (
    PoolConfig,
    PRECISION,
    DEFAULT_REWARDS_DURATION,
)
from .errors import (
    PoolError,
    Unauthorized,
    Reentrant,
    InvalidAmount,
    InsufficientBalance,
    TransferFailed,
    InsufficientAllowance,
    DivisionByZeroGuarded,
    LedgerError,
)

__version__ = "1.0.0"
__all__ = [
    # Core
    "StakingPool",
    "GuardState",
    "PoolState",
    "AccountState",
    # Ledgers
    "TokenLedger",
    "StandardToken",
    "ReflectionToken",
    # Access & time
    "AccessControl",
    "ROLE_OWNER",
    "ROLE_DISTRIBUTION",
    "SystemClock",
    "ManualClock",
    # Events & metrics
    "PoolEvent",
    "EventLog",
    "EventBroadcaster",
    "PoolMetricsCollector",
    # Config
    "PoolConfig",
    "PRECISION",
    "DEFAULT_REWARDS_DURATION",
    # Errors
    "PoolError",
    "Unauthorized",
    "Reentrant",
    "InvalidAmount",
    "InsufficientBalance",
    "TransferFailed",
    "InsufficientAllowance",
    "DivisionByZeroGuarded",
    "LedgerError",
]
