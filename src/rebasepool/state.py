"""
rebasepool/state.py

Pool and per-account accounting state.

PoolState is a plain value owned by the StakingPool engine. Accounts live in
an insertion-ordered mapping so iteration is deterministic.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Iterator, Tuple

from .config import DEFAULT_REWARDS_DURATION


@dataclass
class AccountState:
    """Per-account shares and reward checkpoint."""
    shares: int = 0
    reward_per_token_paid: int = 0      # index at the last checkpoint
    rewards: int = 0                    # accrued, not yet claimed

    def is_empty(self) -> bool:
        """An empty account is equivalent to an absent one."""
        return self.shares == 0 and self.rewards == 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AccountState":
        return cls(
            shares=int(data.get("shares", 0)),
            reward_per_token_paid=int(data.get("reward_per_token_paid", 0)),
            rewards=int(data.get("rewards", 0)),
        )


@dataclass
class PoolState:
    """
    Reward accumulator and share ledger state for one pool.

    reward_per_token_stored is fixed point, scaled by config.PRECISION.
    """
    rewards_duration: int = DEFAULT_REWARDS_DURATION
    reward_rate: int = 0
    period_finish: int = 0
    reward_per_token_stored: int = 0
    last_update_time: int = 0
    total_shares: int = 0
    accounts: Dict[str, AccountState] = field(default_factory=dict)

    def __post_init__(self):
        if self.rewards_duration <= 0:
            raise ValueError(f"rewards_duration must be positive, got {self.rewards_duration}")

    def account(self, address: str) -> AccountState:
        """Get an account, creating it on first use."""
        acct = self.accounts.get(address)
        if acct is None:
            acct = AccountState()
            self.accounts[address] = acct
        return acct

    def peek(self, address: str) -> AccountState:
        """Get an account without creating it."""
        return self.accounts.get(address) or AccountState()

    def shares_of(self, address: str) -> int:
        acct = self.accounts.get(address)
        return acct.shares if acct else 0

    def iter_accounts(self) -> Iterator[Tuple[str, AccountState]]:
        """Accounts holding shares or unclaimed rewards, in creation order."""
        for address, acct in self.accounts.items():
            if not acct.is_empty():
                yield address, acct

    def copy(self) -> "PoolState":
        return PoolState(
            rewards_duration=self.rewards_duration,
            reward_rate=self.reward_rate,
            period_finish=self.period_finish,
            reward_per_token_stored=self.reward_per_token_stored,
            last_update_time=self.last_update_time,
            total_shares=self.total_shares,
            accounts={
                address: AccountState(acct.shares, acct.reward_per_token_paid, acct.rewards)
                for address, acct in self.accounts.items()
            },
        )

    def to_dict(self) -> dict:
        return {
            "rewards_duration": self.rewards_duration,
            "reward_rate": self.reward_rate,
            "period_finish": self.period_finish,
            "reward_per_token_stored": self.reward_per_token_stored,
            "last_update_time": self.last_update_time,
            "total_shares": self.total_shares,
            "accounts": {a: acct.to_dict() for a, acct in self.accounts.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PoolState":
        return cls(
            rewards_duration=int(data.get("rewards_duration", DEFAULT_REWARDS_DURATION)),
            reward_rate=int(data.get("reward_rate", 0)),
            period_finish=int(data.get("period_finish", 0)),
            reward_per_token_stored=int(data.get("reward_per_token_stored", 0)),
            last_update_time=int(data.get("last_update_time", 0)),
            total_shares=int(data.get("total_shares", 0)),
            accounts={
                a: AccountState.from_dict(d)
                for a, d in data.get("accounts", {}).items()
            },
        )
