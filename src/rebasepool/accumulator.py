"""
rebasepool/accumulator.py

Reward Accumulator.

Streams a notified reward linearly over an emission period and keeps a
reward-per-token index so each account's entitlement can be computed
without iterating over all accounts:

    reward_per_token = stored + elapsed * reward_rate * PRECISION / total_supply
    earned(a)        = rewards[a] + balance(a) * (reward_per_token - paid[a]) / PRECISION

total_supply is always the live (elastic) holding of the staked asset, so
reward density reacts to passive balance changes of the pool.

All functions here are pure arithmetic over a PoolState; the caller supplies
`now` and the live supply/balance figures.
"""

import logging
from typing import Optional

from .config import PRECISION
from .state import PoolState

logger = logging.getLogger("rebasepool.accumulator")


def last_time_reward_applicable(state: PoolState, now: int) -> int:
    """min(now, period_finish)"""
    return min(now, state.period_finish)


def reward_per_token(state: PoolState, now: int, total_supply: int) -> int:
    """Current reward-per-token index. Unchanged while nothing is staked."""
    if total_supply == 0:
        return state.reward_per_token_stored
    elapsed = last_time_reward_applicable(state, now) - state.last_update_time
    if elapsed <= 0:
        return state.reward_per_token_stored
    return state.reward_per_token_stored + elapsed * state.reward_rate * PRECISION // total_supply


def accrued(balance: int, index: int, paid: int) -> int:
    """Reward earned by balance while the index moved from paid to index."""
    return balance * (index - paid) // PRECISION


def earned(state: PoolState, account: str, now: int, total_supply: int, balance: int) -> int:
    """Read-only projection of what a checkpoint for account would yield."""
    acct = state.peek(account)
    index = reward_per_token(state, now, total_supply)
    return acct.rewards + accrued(balance, index, acct.reward_per_token_paid)


def checkpoint(
    state: PoolState,
    now: int,
    total_supply: int,
    account: Optional[str] = None,
    balance: int = 0,
) -> int:
    """
    Pull accrued reward forward to now.

    total_supply and balance must be the figures from BEFORE the mutation
    that follows the checkpoint. Without an account only the global index is
    refreshed. Returns the refreshed index.
    """
    index = reward_per_token(state, now, total_supply)
    state.reward_per_token_stored = index
    state.last_update_time = last_time_reward_applicable(state, now)

    if account is not None:
        acct = state.account(account)
        gained = accrued(balance, index, acct.reward_per_token_paid)
        acct.rewards += gained
        acct.reward_per_token_paid = index
        logger.debug(f"Checkpoint {account}: +{gained} (index {index})")

    return index


def notify_reward_amount(state: PoolState, reward: int, now: int) -> int:
    """
    Start a new emission period carrying reward.

    Unspent emission of a running period is rolled into the new rate.
    The global checkpoint must already have run. Returns the new rate.
    """
    duration = state.rewards_duration
    if now >= state.period_finish:
        state.reward_rate = reward // duration
    else:
        leftover = (state.period_finish - now) * state.reward_rate
        state.reward_rate = (reward + leftover) // duration

    state.last_update_time = now
    state.period_finish = now + duration
    return state.reward_rate
