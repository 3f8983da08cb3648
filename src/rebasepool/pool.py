"""
rebasepool/pool.py

StakingPool engine.

Ties the Reward Accumulator to the Elastic Share Ledger:

- every mutating entry point first checkpoints accrued reward against the
  current share-derived balances, then applies its mutation
- every entry point runs inside a transaction: guarded against reentrancy,
  reverted as a whole (pool state, ledgers, access control) on any failure,
  and its events only published on commit

Usage:
    staked = ReflectionToken("STAKED", supply=10**24, holder="alice")
    reward = StandardToken("REWARD", supply=10**24, holder="alice")
    pool = StakingPool(staked, reward, 86400, owner="alice", clock=ManualClock())
    staked.exclude_from_fee(pool.address)

    pool.set_reward_distribution("alice", "alice")
    reward.transfer("alice", pool.address, 10**21)
    pool.notify_reward_amount("alice", 10**21)

    staked.approve("alice", pool.address, 10**12)
    pool.stake("alice", 10**12)
    pool.earned("alice")
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from . import accumulator
from . import shares as share_math
from .access import AccessControl, ROLE_DISTRIBUTION
from .clock import SystemClock
from .config import DEFAULT_REWARDS_DURATION, DEFAULT_POOL_ADDRESS, PoolConfig
from .errors import (
    DivisionByZeroGuarded,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    LedgerError,
    LedgerInsufficientAllowance,
    Reentrant,
    TransferFailed,
)
from .events import (
    EventLog,
    PoolEvent,
    OWNERSHIP_TRANSFERRED,
    REWARD_ADDED,
    REWARD_DISTRIBUTION_SET,
    REWARD_PAID,
    STAKED,
    WITHDRAWN,
)
from .state import PoolState
from .tokens import TokenLedger

logger = logging.getLogger("rebasepool.pool")


class GuardState(Enum):
    """Reentrancy guard: idle -> busy -> idle."""
    IDLE = "idle"
    BUSY = "busy"


def _check_address(account: str) -> str:
    if not isinstance(account, str) or not account:
        raise ValueError(f"Invalid address: {account!r}")
    return account


def _check_amount(amount: int, operation: str) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        logger.warning(f"Rejected {operation}: invalid amount {amount!r}")
        raise InvalidAmount(f"{operation}: amount must be a positive integer, got {amount!r}")
    return amount


class StakingPool:
    """
    Reward-streaming staking pool over a rebasing staked asset.

    Stakes are tracked as shares priced against the pool's live holdings of
    the staked asset, so passive growth of those holdings is split pro rata
    between existing stakers. Rewards stream linearly over rewards_duration
    seconds after each notify_reward_amount.
    """

    def __init__(
        self,
        staked_token: TokenLedger,
        reward_token: TokenLedger,
        rewards_duration: int = DEFAULT_REWARDS_DURATION,
        owner: str = "",
        address: str = DEFAULT_POOL_ADDRESS,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[EventLog] = None,
    ):
        """
        Initialize StakingPool.

        Args:
            staked_token: Ledger of the staked (possibly rebasing) asset
            reward_token: Ledger of the reward asset
            rewards_duration: Length of an emission period in seconds
            owner: Address allowed to appoint the reward distributor
            address: This pool's address on both ledgers
            clock: Callable returning the current timestamp (default: wall clock)
            events: EventLog receiving committed events
        """
        self.staked_token = staked_token
        self.reward_token = reward_token
        self.address = _check_address(address)
        self.clock = clock or SystemClock()
        self.events = events if events is not None else EventLog()
        self.access = AccessControl(owner)

        self.state = PoolState(rewards_duration=int(rewards_duration))

        self._guard = GuardState.IDLE
        self._pending_events: List[PoolEvent] = []

        for ledger in self._ledgers():
            if ledger.snapshot() is None:
                raise ValueError(
                    f"{getattr(ledger, 'symbol', type(ledger).__name__)} ledger "
                    f"cannot be reverted: snapshot() returned None"
                )

        logger.info(
            f"StakingPool {self.address} created "
            f"(duration={self.state.rewards_duration}s, owner={owner})"
        )

    @classmethod
    def from_config(
        cls,
        config: PoolConfig,
        staked_token: TokenLedger,
        reward_token: TokenLedger,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[EventLog] = None,
    ) -> "StakingPool":
        config.validate()
        return cls(
            staked_token,
            reward_token,
            rewards_duration=config.rewards_duration,
            owner=config.owner,
            address=config.pool_address,
            clock=clock,
            events=events,
        )

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    def now(self) -> int:
        return int(self.clock())

    @property
    def guard(self) -> GuardState:
        return self._guard

    @property
    def owner(self) -> str:
        return self.access.owner

    @property
    def reward_distribution(self) -> Optional[str]:
        return self.access.reward_distribution

    @property
    def reward_rate(self) -> int:
        return self.state.reward_rate

    @property
    def period_finish(self) -> int:
        return self.state.period_finish

    @property
    def last_update_time(self) -> int:
        return self.state.last_update_time

    @property
    def rewards_duration(self) -> int:
        return self.state.rewards_duration

    @property
    def reward_per_token_stored(self) -> int:
        return self.state.reward_per_token_stored

    @property
    def total_shares(self) -> int:
        return self.state.total_shares

    def total_supply(self) -> int:
        """Live holdings of the staked asset, as reported by its ledger."""
        return self.staked_token.balance_of(self.address)

    def shares_of(self, account: str) -> int:
        return self.state.shares_of(_check_address(account))

    def balance_of(self, account: str) -> int:
        """account's shares priced against the live holdings."""
        return share_math.balance_of(
            self.shares_of(account), self.state.total_shares, self.total_supply()
        )

    def last_time_reward_applicable(self) -> int:
        return accumulator.last_time_reward_applicable(self.state, self.now())

    def reward_per_token(self) -> int:
        return accumulator.reward_per_token(self.state, self.now(), self.total_supply())

    def earned(self, account: str) -> int:
        return accumulator.earned(
            self.state,
            _check_address(account),
            self.now(),
            self.total_supply(),
            self.balance_of(account),
        )

    def accounts(self) -> List[str]:
        """Addresses holding shares or unclaimed rewards, in first-stake order."""
        return [address for address, _ in self.state.iter_accounts()]

    def account_info(self, account: str) -> Dict[str, Any]:
        acct = self.state.peek(_check_address(account))
        return {
            "address": account,
            "shares": acct.shares,
            "balance": self.balance_of(account),
            "earned": self.earned(account),
            "rewards": acct.rewards,
            "reward_per_token_paid": acct.reward_per_token_paid,
        }

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time view of the pool (for APIs and debugging)."""
        return {
            "address": self.address,
            "owner": self.owner,
            "reward_distribution": self.reward_distribution,
            "now": self.now(),
            "total_supply": self.total_supply(),
            "total_shares": self.state.total_shares,
            "reward_rate": self.state.reward_rate,
            "reward_per_token": self.reward_per_token(),
            "reward_per_token_stored": self.state.reward_per_token_stored,
            "last_update_time": self.state.last_update_time,
            "last_time_reward_applicable": self.last_time_reward_applicable(),
            "period_finish": self.state.period_finish,
            "rewards_duration": self.state.rewards_duration,
            "accounts": len(self.accounts()),
            "guard": self._guard.value,
        }

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def set_reward_distribution(self, caller: str, distributor: str) -> None:
        """Appoint the address allowed to notify rewards (owner only)."""
        with self._transaction("set_reward_distribution"):
            self.access.set_reward_distribution(caller, distributor)
            self._emit(REWARD_DISTRIBUTION_SET, distributor=distributor)
        logger.info(f"Reward distribution set to {distributor}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._transaction("transfer_ownership"):
            previous = self.access.transfer_ownership(caller, new_owner)
            self._emit(OWNERSHIP_TRANSFERRED, previous_owner=previous, new_owner=new_owner)
        logger.info(f"Ownership transferred to {new_owner}")

    def notify_reward_amount(self, caller: str, reward: int) -> int:
        """
        Start a new emission period streaming reward (distribution role only).

        Unspent emission of a running period is rolled into the new rate.
        Funding is not checked here: an under-funded pool fails at claim time.

        Returns:
            The new reward rate
        """
        if not isinstance(reward, int) or isinstance(reward, bool) or reward < 0:
            raise InvalidAmount(f"notify_reward_amount: invalid reward {reward!r}")

        with self._transaction("notify_reward_amount"):
            self.access.require(caller, ROLE_DISTRIBUTION)
            now = self.now()
            accumulator.checkpoint(self.state, now, self.total_supply())
            rate = accumulator.notify_reward_amount(self.state, reward, now)
            self._warn_if_underfunded()
            self._emit(REWARD_ADDED, reward=reward)

        logger.info(
            f"Reward added: {reward} (rate {rate}/s until {self.state.period_finish})"
        )
        return rate

    def _warn_if_underfunded(self) -> None:
        committed = self.state.reward_rate * self.state.rewards_duration
        held = self.reward_token.balance_of(self.address)
        if held < committed:
            logger.warning(
                f"Pool {self.address} holds {held} reward tokens, "
                f"period emits {committed}; claims may fail"
            )

    # ========================================================================
    # STAKER ENTRY POINTS
    # ========================================================================

    def stake(self, caller: str, amount: int) -> int:
        """
        Deposit amount of the staked asset.

        Shares are priced at the holdings from before the transfer, floored.

        Returns:
            Shares minted
        """
        _check_address(caller)
        _check_amount(amount, "stake")

        with self._transaction("stake"):
            holdings_before = self.total_supply()
            self._checkpoint(caller, holdings_before)

            try:
                minted = share_math.shares_for_deposit(
                    amount, self.state.total_shares, holdings_before
                )
            except DivisionByZeroGuarded:
                logger.warning(
                    f"Rejected stake by {caller}: pool {self.address} holds nothing "
                    f"against {self.state.total_shares} shares"
                )
                raise
            if minted == 0:
                raise InvalidAmount(f"stake: {amount} is worth less than one share")

            self._pull(caller, amount)

            received = self.total_supply() - holdings_before
            if received < amount:
                logger.warning(
                    f"Pool {self.address} received {received} of {amount} staked by {caller}; "
                    f"is the pool exempt from transfer fees?"
                )

            self.state.account(caller).shares += minted
            self.state.total_shares += minted
            self._emit(STAKED, account=caller, amount=amount)

        logger.info(f"Staked: {caller} {amount} ({minted} shares)")
        return minted

    def withdraw(self, caller: str, amount: int) -> int:
        """
        Withdraw amount of the staked asset.

        Returns:
            Shares burned
        """
        _check_address(caller)
        _check_amount(amount, "withdraw")

        with self._transaction("withdraw"):
            burned = self._withdraw(caller, amount)

        logger.info(f"Withdrawn: {caller} {amount} ({burned} shares)")
        return burned

    def get_reward(self, caller: str) -> int:
        """
        Claim all accrued reward. A no-op when nothing has accrued.

        Returns:
            Reward paid
        """
        _check_address(caller)

        with self._transaction("get_reward"):
            paid = self._get_reward(caller)

        if paid:
            logger.info(f"Reward paid: {caller} {paid}")
        return paid

    def exit(self, caller: str) -> Tuple[int, int]:
        """
        Withdraw the full balance and claim rewards as one atomic unit.

        Returns:
            (amount withdrawn, reward paid)
        """
        _check_address(caller)

        with self._transaction("exit"):
            self._checkpoint(caller, self.total_supply())
            self._require_reward_funds(caller)

            amount = self.balance_of(caller)
            if amount > 0:
                self._withdraw(caller, amount)
            paid = self._get_reward(caller)

        logger.info(f"Exit: {caller} withdrew {amount}, reward {paid}")
        return amount, paid

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _checkpoint(self, account: str, holdings: int) -> None:
        """Run the reward checkpoint for account against pre-mutation figures."""
        balance = share_math.balance_of(
            self.state.shares_of(account), self.state.total_shares, holdings
        )
        accumulator.checkpoint(self.state, self.now(), holdings, account, balance)

    def _withdraw(self, caller: str, amount: int) -> int:
        holdings = self.total_supply()
        self._checkpoint(caller, holdings)

        acct = self.state.account(caller)
        balance = share_math.balance_of(acct.shares, self.state.total_shares, holdings)
        if amount > balance:
            logger.warning(f"Rejected withdraw: {caller} has {balance}, asked {amount}")
            raise InsufficientBalance(f"withdraw: balance {balance} < {amount}")

        if amount == balance:
            # a full withdrawal retires every share, whatever the price
            burned = acct.shares
        else:
            burned = share_math.shares_for_withdrawal(
                amount, self.state.total_shares, holdings, acct.shares
            )
        acct.shares -= burned
        self.state.total_shares -= burned

        self._push(self.staked_token, caller, amount)
        self._emit(WITHDRAWN, account=caller, amount=amount)
        return burned

    def _get_reward(self, caller: str) -> int:
        self._checkpoint(caller, self.total_supply())

        acct = self.state.account(caller)
        reward = acct.rewards
        if reward <= 0:
            return 0

        acct.rewards = 0
        self._push(self.reward_token, caller, reward)
        self._emit(REWARD_PAID, account=caller, reward=reward)
        return reward

    def _require_reward_funds(self, caller: str) -> None:
        """Fail before any transfer if the pool cannot pay caller's reward."""
        owed = self.state.peek(caller).rewards
        held = self.reward_token.balance_of(self.address)
        if owed > held:
            logger.warning(f"Pool {self.address} holds {held} reward tokens, {caller} is owed {owed}")
            raise TransferFailed(f"reward balance {held} < {owed} owed to {caller}")

    def _pull(self, owner: str, amount: int) -> None:
        """Move amount of the staked asset from owner into the pool."""
        symbol = getattr(self.staked_token, "symbol", "")
        try:
            ok = self.staked_token.transfer_from(self.address, owner, self.address, amount)
        except LedgerInsufficientAllowance as e:
            logger.error(f"Stake pull from {owner} failed: {e}")
            raise InsufficientAllowance(str(e)) from e
        except LedgerError as e:
            logger.error(f"Stake pull from {owner} failed: {e}")
            raise TransferFailed(str(e)) from e
        if not ok:
            logger.error(f"Stake pull from {owner} refused by {symbol} ledger")
            raise TransferFailed(f"{symbol} transfer_from {owner} -> {self.address} failed")

    def _push(self, ledger: TokenLedger, recipient: str, amount: int) -> None:
        """Move amount out of the pool on ledger."""
        symbol = getattr(ledger, "symbol", "")
        try:
            ok = ledger.transfer(self.address, recipient, amount)
        except LedgerError as e:
            logger.error(f"Transfer of {amount} {symbol} to {recipient} failed: {e}")
            raise TransferFailed(str(e)) from e
        if not ok:
            logger.error(f"Transfer of {amount} {symbol} to {recipient} refused")
            raise TransferFailed(f"{symbol} transfer {self.address} -> {recipient} failed")

    def _emit(self, name: str, **args: Any) -> None:
        self._pending_events.append(PoolEvent(name=name, args=args, timestamp=self.now()))

    def _ledgers(self) -> List[TokenLedger]:
        if self.reward_token is self.staked_token:
            return [self.staked_token]
        return [self.staked_token, self.reward_token]

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        """
        Run an entry point all-or-nothing.

        Rejects reentrant calls, snapshots everything the call can touch,
        restores it on any exception and publishes buffered events only once
        the call has committed.
        """
        if self._guard is GuardState.BUSY:
            logger.warning(f"Rejected reentrant call to {operation}")
            raise Reentrant(f"{operation}: reentrant call")

        self._guard = GuardState.BUSY
        saved_state = self.state.copy()
        saved_access = self.access.snapshot()
        saved_ledgers = [(ledger, ledger.snapshot()) for ledger in self._ledgers()]
        self._pending_events = []

        try:
            yield
        except BaseException:
            self.state = saved_state
            self.access.restore(saved_access)
            for ledger, snap in saved_ledgers:
                ledger.restore(snap)
            self._pending_events = []
            logger.debug(f"Reverted {operation}")
            raise
        finally:
            self._guard = GuardState.IDLE

        committed, self._pending_events = self._pending_events, []
        self.events.commit(committed)
