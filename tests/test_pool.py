"""
rebasepool/tests/test_pool.py

Tests for the StakingPool engine:
- administration (reward distribution, notify)
- stake / withdraw / get_reward / exit against a reflection staked asset
- reward streaming and elastic share properties
- atomicity of failed calls
"""

import pytest
from unittest.mock import Mock

from rebasepool import (
    StakingPool,
    ReflectionToken,
    StandardToken,
    ManualClock,
    PoolConfig,
    GuardState,
    PRECISION,
    TokenLedger,
)
from rebasepool.errors import (
    DivisionByZeroGuarded,
    Unauthorized,
    Reentrant,
    InvalidAmount,
    InsufficientBalance,
    InsufficientAllowance,
    TransferFailed,
)
from rebasepool.events import (
    REWARD_ADDED,
    REWARD_DISTRIBUTION_SET,
    REWARD_PAID,
    STAKED,
    WITHDRAWN,
)


OWNER = "owner"
OTHER = "other"
START = 1_700_000_000
DURATION = 86400
SUPPLY = 10**24
REWARD = 10**21
STAKE = 10**12
TOLERANCE = 10**17


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def staked():
    """Reflection token; the deployer (OWNER) is fee-exempt."""
    return ReflectionToken("STAKED", supply=SUPPLY, holder=OWNER)


@pytest.fixture
def reward():
    return StandardToken("REWARD", supply=SUPPLY, holder=OWNER)


@pytest.fixture
def pool(staked, reward, clock):
    return StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)


def fund_and_notify(pool, reward, amount=REWARD):
    reward.transfer(OWNER, pool.address, amount)
    pool.set_reward_distribution(OWNER, OWNER)
    pool.notify_reward_amount(OWNER, amount)


def approve_and_stake(pool, staked, account, amount=STAKE):
    staked.approve(account, pool.address, amount)
    return pool.stake(account, amount)


def event_args(pool, name):
    return [e.args for e in pool.events.filter(name=name)]


# ============================================================================
# ADMINISTRATION
# ============================================================================

class TestSetRewardDistribution:
    """Tests for set_reward_distribution."""

    def test_only_owner(self, pool):
        with pytest.raises(Unauthorized):
            pool.set_reward_distribution(OTHER, OTHER)
        assert pool.reward_distribution is None

    def test_owner_sets_distributor(self, pool):
        pool.set_reward_distribution(OWNER, OTHER)
        assert pool.reward_distribution == OTHER

    def test_transfer_ownership(self, pool):
        pool.transfer_ownership(OWNER, OTHER)
        assert pool.owner == OTHER
        with pytest.raises(Unauthorized):
            pool.set_reward_distribution(OWNER, OWNER)


class TestNotifyRewardAmount:
    """Tests for notify_reward_amount."""

    def test_only_reward_distribution(self, pool):
        with pytest.raises(Unauthorized):
            pool.notify_reward_amount(OWNER, REWARD)
        assert pool.reward_rate == 0
        assert len(pool.events) == 0

    def test_adds_rewards(self, pool, clock):
        pool.set_reward_distribution(OWNER, OWNER)

        pool.notify_reward_amount(OWNER, REWARD)

        assert event_args(pool, REWARD_ADDED) == [{"reward": REWARD}]
        assert pool.reward_rate == REWARD // DURATION
        assert pool.last_update_time == START
        assert pool.period_finish == START + DURATION

        # add half after 12 hours: the unspent half rolls over
        clock.advance(43200)
        pool.notify_reward_amount(OWNER, REWARD // 2)

        assert abs(pool.reward_rate - REWARD // DURATION) <= 10**12
        assert pool.last_update_time == START + 43200
        assert pool.period_finish == START + 43200 + DURATION

    def test_negative_reward_rejected(self, pool):
        pool.set_reward_distribution(OWNER, OWNER)
        with pytest.raises(InvalidAmount):
            pool.notify_reward_amount(OWNER, -1)

    def test_underfunded_notify_is_accepted(self, pool):
        """Funding is only checked when rewards are claimed."""
        pool.set_reward_distribution(OWNER, OWNER)
        rate = pool.notify_reward_amount(OWNER, REWARD)
        assert rate == REWARD // DURATION


# ============================================================================
# STAKE / WITHDRAW
# ============================================================================

class TestStake:
    """Tests for stake."""

    def test_stakes_the_given_amount(self, pool, staked):
        staked.exclude_from_fee(pool.address)
        balance = staked.balance_of(OWNER)

        approve_and_stake(pool, staked, OWNER)

        assert event_args(pool, STAKED) == [{"account": OWNER, "amount": STAKE}]
        assert pool.total_supply() == STAKE
        assert pool.balance_of(OWNER) == STAKE
        assert balance - staked.balance_of(OWNER) == STAKE

        staked.transfer(OWNER, OTHER, STAKE)
        approve_and_stake(pool, staked, OTHER)

        assert event_args(pool, STAKED)[-1] == {"account": OTHER, "amount": STAKE}
        assert pool.total_supply() == 2 * STAKE
        assert pool.balance_of(OTHER) == STAKE
        assert staked.balance_of(OTHER) == 0

    def test_first_stake_mints_one_to_one(self, pool, staked):
        minted = approve_and_stake(pool, staked, OWNER)
        assert minted == STAKE
        assert pool.total_shares == STAKE
        assert pool.shares_of(OWNER) == STAKE

    @pytest.mark.parametrize("amount", [0, -5, True, 1.5])
    def test_invalid_amount(self, pool, amount):
        with pytest.raises(InvalidAmount):
            pool.stake(OWNER, amount)

    def test_without_allowance(self, pool, staked):
        with pytest.raises(InsufficientAllowance):
            pool.stake(OWNER, STAKE)

        assert pool.total_shares == 0
        assert pool.accounts() == []
        assert len(pool.events) == 0

    def test_ledger_refuses(self, pool, staked):
        staked.approve(OWNER, pool.address, STAKE)
        staked.fail_transfers = True

        with pytest.raises(TransferFailed):
            pool.stake(OWNER, STAKE)

        assert pool.total_shares == 0
        assert staked.allowance(OWNER, pool.address) == STAKE

    def test_invalid_address(self, pool):
        with pytest.raises(ValueError):
            pool.stake("", STAKE)


class TestWithdraw:
    """Tests for withdraw."""

    def test_withdraws_the_given_amount(self, pool, staked):
        staked.exclude_from_fee(pool.address)
        approve_and_stake(pool, staked, OWNER)
        staked.transfer(OWNER, OTHER, STAKE)
        approve_and_stake(pool, staked, OTHER)

        balance = staked.balance_of(OWNER)
        pool.withdraw(OWNER, STAKE)

        assert event_args(pool, WITHDRAWN) == [{"account": OWNER, "amount": STAKE}]
        assert pool.total_supply() == STAKE
        assert pool.balance_of(OWNER) == 0
        assert staked.balance_of(OWNER) - balance == STAKE

        pool.withdraw(OTHER, STAKE)

        assert pool.total_supply() == 0
        assert pool.balance_of(OTHER) == 0
        assert staked.balance_of(OTHER) == STAKE
        assert pool.total_shares == 0

    def test_more_than_balance(self, pool, staked):
        approve_and_stake(pool, staked, OWNER)
        before = pool.state.to_dict()

        with pytest.raises(InsufficientBalance):
            pool.withdraw(OWNER, STAKE + 1)

        assert pool.state.to_dict() == before

    def test_never_staked(self, pool):
        with pytest.raises(InsufficientBalance):
            pool.withdraw(OTHER, 1)

    def test_zero_amount(self, pool):
        with pytest.raises(InvalidAmount):
            pool.withdraw(OWNER, 0)


# ============================================================================
# REWARD STREAMING
# ============================================================================

class TestLastTimeRewardApplicable:
    """Tests for last_time_reward_applicable."""

    def test_returns_the_last_time_rewards_could_be_earned(self, pool, clock):
        pool.set_reward_distribution(OWNER, OWNER)
        pool.notify_reward_amount(OWNER, REWARD)

        clock.advance(43200)
        assert pool.last_time_reward_applicable() == clock.now

        clock.advance(43200)
        assert pool.last_time_reward_applicable() == pool.period_finish


class TestRewardPerToken:
    """Tests for reward_per_token."""

    def test_reward_per_staked_token(self, pool, staked, clock):
        pool.set_reward_distribution(OWNER, OWNER)
        pool.notify_reward_amount(OWNER, REWARD)
        approve_and_stake(pool, staked, OWNER)

        clock.advance(DURATION)

        # the whole reward spread over STAKE units
        expected = REWARD * PRECISION // STAKE
        rpt = pool.reward_per_token()
        assert abs(rpt - expected) <= expected // 10

        pool.withdraw(OWNER, STAKE)
        assert pool.total_supply() == 0
        assert pool.reward_per_token() == rpt

    def test_unchanged_without_stakers(self, pool, clock):
        pool.set_reward_distribution(OWNER, OWNER)
        pool.notify_reward_amount(OWNER, REWARD)
        clock.advance(3600)
        assert pool.reward_per_token() == 0


class TestEarned:
    """Tests for earned."""

    def test_returns_the_amount_of_rewards_earned(self, pool, staked, reward, clock):
        staked.exclude_from_fee(pool.address)
        approve_and_stake(pool, staked, OWNER)
        fund_and_notify(pool, reward)

        clock.advance(3600)
        assert abs(pool.earned(OWNER) - REWARD // 24) <= TOLERANCE

        pool.get_reward(OWNER)
        clock.advance(3600)
        assert abs(pool.earned(OWNER) - REWARD // 24) <= TOLERANCE

        pool.get_reward(OWNER)
        staked.transfer(OWNER, OTHER, STAKE)
        approve_and_stake(pool, staked, OTHER)
        clock.advance(3600)

        assert abs(pool.earned(OWNER) - REWARD // 24 // 2) <= TOLERANCE
        assert abs(pool.earned(OTHER) - REWARD // 24 // 2) <= TOLERANCE

    def test_single_staker_exactness(self, pool, staked, reward, clock):
        approve_and_stake(pool, staked, OWNER)
        fund_and_notify(pool, reward)

        for hours in (1, 5, 12, 23):
            clock.set(START + hours * 3600)
            expected = REWARD * hours * 3600 // DURATION
            assert abs(pool.earned(OWNER) - expected) <= DURATION

    def test_earned_is_read_only(self, pool, staked, reward, clock):
        approve_and_stake(pool, staked, OWNER)
        fund_and_notify(pool, reward)
        clock.advance(100)

        before = pool.state.to_dict()
        pool.earned(OWNER)
        pool.earned("nobody")
        assert pool.state.to_dict() == before


class TestGetReward:
    """Tests for get_reward."""

    def test_withdraws_the_amount_of_rewards_earned(self, pool, staked, reward, clock):
        fund_and_notify(pool, reward)
        approve_and_stake(pool, staked, OWNER)

        balance = reward.balance_of(OWNER)
        clock.advance(3600)

        earned = pool.earned(OWNER)
        paid = pool.get_reward(OWNER)

        assert paid == earned
        assert event_args(pool, REWARD_PAID) == [{"account": OWNER, "reward": earned}]
        assert reward.balance_of(OWNER) - balance == earned
        assert pool.earned(OWNER) == 0

    def test_zero_claim_is_a_no_op(self, pool, staked, reward):
        approve_and_stake(pool, staked, OWNER)
        reward.on_transfer = Mock()
        events_before = len(pool.events)

        assert pool.get_reward(OWNER) == 0
        assert pool.get_reward(OTHER) == 0

        reward.on_transfer.assert_not_called()
        assert len(pool.events) == events_before

    def test_underfunded_claim_restores_rewards(self, pool, staked, reward, clock):
        pool.set_reward_distribution(OWNER, OWNER)
        pool.notify_reward_amount(OWNER, REWARD)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(3600)

        earned = pool.earned(OWNER)
        with pytest.raises(TransferFailed):
            pool.get_reward(OWNER)

        assert pool.earned(OWNER) == earned
        assert pool.events.filter(name=REWARD_PAID) == []

        # funding the pool afterwards lets the same claim succeed
        reward.transfer(OWNER, pool.address, REWARD)
        assert pool.get_reward(OWNER) == earned


class TestExit:
    """Tests for exit."""

    def test_withdraws_stake_and_rewards(self, pool, staked, reward, clock):
        fund_and_notify(pool, reward)
        staked.exclude_from_fee(pool.address)
        approve_and_stake(pool, staked, OWNER)

        staked_balance = staked.balance_of(OWNER)
        reward_balance = reward.balance_of(OWNER)
        clock.advance(3600)

        earned = pool.earned(OWNER)
        withdrawn, paid = pool.exit(OWNER)

        assert withdrawn == STAKE
        assert paid == earned
        assert event_args(pool, WITHDRAWN) == [{"account": OWNER, "amount": STAKE}]
        assert event_args(pool, REWARD_PAID) == [{"account": OWNER, "reward": earned}]
        assert reward.balance_of(OWNER) - reward_balance == earned
        assert pool.total_supply() == 0
        assert pool.balance_of(OWNER) == 0
        assert staked.balance_of(OWNER) - staked_balance == STAKE
        assert pool.accounts() == []

    def test_exit_is_atomic(self, pool, staked, reward, clock):
        fund_and_notify(pool, reward)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(3600)

        staked_balance = staked.balance_of(OWNER)
        earned = pool.earned(OWNER)
        state = pool.state.to_dict()
        events = len(pool.events)

        reward.fail_transfers = True
        with pytest.raises(TransferFailed):
            pool.exit(OWNER)

        assert pool.state.to_dict() == state
        assert pool.balance_of(OWNER) == STAKE
        assert pool.earned(OWNER) == earned
        assert staked.balance_of(OWNER) == staked_balance
        assert len(pool.events) == events
        assert pool.guard is GuardState.IDLE

        reward.fail_transfers = False
        assert pool.exit(OWNER) == (STAKE, earned)

    def test_exit_with_only_rewards(self, pool, staked, reward, clock):
        fund_and_notify(pool, reward)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(3600)
        pool.withdraw(OWNER, STAKE)

        withdrawn, paid = pool.exit(OWNER)

        assert withdrawn == 0
        assert paid > 0


# ============================================================================
# ELASTIC SUPPLY
# ============================================================================

class TestTotalSupply:
    """Tests for total_supply under reflection fees."""

    def test_accounts_for_static_rewards(self, pool, staked):
        staked.include_in_fee(OWNER)
        staked.exclude_from_fee(pool.address)
        approve_and_stake(pool, staked, OWNER)

        assert pool.total_supply() == STAKE

        staked.transfer(OWNER, OTHER, 10**23)

        # 5% of a transfer of 10% of supply is reflected; the pool holds 1e-12 of supply
        assert pool.total_supply() >= 1005000000000


class TestBalanceOf:
    """Tests for balance_of under reflection fees."""

    def test_accounts_for_static_rewards(self, pool, staked):
        staked.include_in_fee(OWNER)
        staked.exclude_from_fee(pool.address)
        approve_and_stake(pool, staked, OWNER)

        assert pool.balance_of(OWNER) == STAKE

        staked.transfer(OWNER, OTHER, 10**23)

        assert pool.balance_of(OWNER) >= 1005000000000
        assert pool.total_supply() == pool.balance_of(OWNER)

        approve_and_stake(pool, staked, OTHER)
        staked.transfer(OTHER, OWNER, staked.balance_of(OTHER))

        # 5% of ~9e22 is reflected; each account staked ~1e-12 of supply
        assert pool.total_supply() >= 2014000000000
        assert pool.balance_of(OWNER) >= 1009500000000
        assert pool.balance_of(OTHER) >= 1004500000000

        pool.exit(OWNER)
        pool.exit(OTHER)
        assert pool.total_shares == 0

    def test_passive_growth_is_split_pro_rata(self, reward, clock):
        staked = StandardToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        staked.transfer(OWNER, OTHER, 3 * STAKE)

        approve_and_stake(pool, staked, OWNER, STAKE)
        approve_and_stake(pool, staked, OTHER, 3 * STAKE)

        # a third party credits the pool without calling it
        staked.transfer(OWNER, pool.address, 4000)

        assert pool.total_supply() == 4 * STAKE + 4000
        assert pool.balance_of(OWNER) == STAKE + 1000
        assert pool.balance_of(OTHER) == 3 * STAKE + 3000

    def test_later_staker_does_not_capture_past_growth(self, reward, clock):
        staked = StandardToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        staked.transfer(OWNER, OTHER, STAKE)

        approve_and_stake(pool, staked, OWNER, STAKE)
        staked.transfer(OWNER, pool.address, STAKE)  # share price doubles
        approve_and_stake(pool, staked, OTHER, STAKE)

        assert pool.shares_of(OTHER) == STAKE // 2
        assert pool.balance_of(OTHER) == STAKE
        assert pool.balance_of(OWNER) == 2 * STAKE


# ============================================================================
# PROPERTIES
# ============================================================================

class TestConservation:
    """Balances and rewards never exceed what the pool holds or emitted."""

    def test_balances_and_rewards_conserved(self, reward, clock):
        staked = StandardToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        users = ["alice", "bob", "carol"]
        for user in users:
            staked.transfer(OWNER, user, 10**15)

        fund_and_notify(pool, reward)

        script = [
            ("alice", "stake", 7 * 10**12),
            ("bob", "stake", 3 * 10**12 + 17),
            ("alice", "withdraw", 10**12 + 3),
            ("carol", "stake", 5 * 10**12 + 1),
            ("bob", "get_reward", None),
            ("carol", "withdraw", 2 * 10**12),
            ("alice", "get_reward", None),
            ("bob", "stake", 10**12 + 9),
        ]
        for user, op, amount in script:
            clock.advance(1800)
            if op == "stake":
                approve_and_stake(pool, staked, user, amount)
            elif op == "withdraw":
                pool.withdraw(user, amount)
            else:
                pool.get_reward(user)

            total = pool.total_supply()
            balances = sum(pool.balance_of(u) for u in users)
            assert balances <= total
            assert total - balances <= len(users)

            emitted = pool.reward_rate * (clock.now - START)
            paid = sum(e.args["reward"] for e in pool.events.filter(name=REWARD_PAID))
            assert paid + sum(pool.earned(u) for u in users) <= emitted

    def test_repeated_stake_withdraw_is_not_profitable(self, reward, clock):
        staked = StandardToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        staked.transfer(OWNER, OTHER, 1000)

        approve_and_stake(pool, staked, OWNER, 10**6)
        staked.transfer(OWNER, pool.address, 1)  # non-integer share price

        start_balance = staked.balance_of(OTHER)
        for _ in range(20):
            approve_and_stake(pool, staked, OTHER, 7)
            balance = pool.balance_of(OTHER)
            if balance:
                pool.withdraw(OTHER, balance)
            assert staked.balance_of(OTHER) + pool.balance_of(OTHER) <= start_balance

    def test_dust_stake_rejected(self, reward, clock):
        staked = StandardToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        staked.transfer(OWNER, OTHER, 10)

        approve_and_stake(pool, staked, OWNER, 10)
        staked.transfer(OWNER, pool.address, 100)  # one share is now worth 11

        staked.approve(OTHER, pool.address, 5)
        with pytest.raises(InvalidAmount):
            pool.stake(OTHER, 5)
        assert staked.balance_of(OTHER) == 10


# ============================================================================
# CONFIGURATION & VIEWS
# ============================================================================

class TestConfigAndViews:
    """Tests for from_config and read-only views."""

    def test_from_config(self, staked, reward, clock):
        config = PoolConfig(owner=OWNER, rewards_duration=3600, pool_address="pool-1")
        pool = StakingPool.from_config(config, staked, reward, clock=clock)

        assert pool.rewards_duration == 3600
        assert pool.address == "pool-1"
        assert pool.owner == OWNER

    def test_from_invalid_config(self, staked, reward):
        with pytest.raises(ValueError):
            StakingPool.from_config(PoolConfig(owner=OWNER, rewards_duration=0), staked, reward)

    def test_owner_required(self, staked, reward):
        with pytest.raises(ValueError):
            StakingPool(staked, reward, DURATION, owner="")

    def test_invalid_address_view(self, pool):
        with pytest.raises(ValueError):
            pool.balance_of("")
        with pytest.raises(ValueError):
            pool.earned(None)

    def test_snapshot(self, pool, staked):
        approve_and_stake(pool, staked, OWNER)
        snap = pool.snapshot()

        assert snap["total_supply"] == STAKE
        assert snap["total_shares"] == STAKE
        assert snap["accounts"] == 1
        assert snap["guard"] == "idle"

    def test_account_info(self, pool, staked):
        approve_and_stake(pool, staked, OWNER)
        info = pool.account_info(OWNER)

        assert info["shares"] == STAKE
        assert info["balance"] == STAKE
        assert info["earned"] == 0

    def test_accounts_in_first_stake_order(self, pool, staked):
        staked.transfer(OWNER, "zed", STAKE)
        staked.transfer(OWNER, "amy", STAKE)
        approve_and_stake(pool, staked, "zed")
        approve_and_stake(pool, staked, "amy")

        assert pool.accounts() == ["zed", "amy"]


# ============================================================================
# REENTRANCY & EVENT COMMIT
# ============================================================================

class TestReentrancy:
    """A ledger calling back into the pool mid-transfer is rejected."""

    def test_reentrant_withdraw_during_stake(self, pool, staked):
        approve_and_stake(pool, staked, OWNER)
        state = pool.state.to_dict()
        balance = staked.balance_of(OWNER)

        staked.approve(OWNER, pool.address, STAKE)
        staked.on_transfer = lambda sender, recipient, amount: pool.withdraw(OWNER, STAKE)

        with pytest.raises(Reentrant):
            pool.stake(OWNER, STAKE)

        assert pool.state.to_dict() == state
        assert staked.balance_of(OWNER) == balance
        assert staked.allowance(OWNER, pool.address) == STAKE
        assert pool.guard is GuardState.IDLE

    def test_reentrant_claim_during_payout(self, pool, staked, reward, clock):
        fund_and_notify(pool, reward)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(3600)

        earned = pool.earned(OWNER)
        balance = reward.balance_of(OWNER)
        reward.on_transfer = lambda sender, recipient, amount: pool.get_reward(OWNER)

        with pytest.raises(Reentrant):
            pool.get_reward(OWNER)

        assert pool.earned(OWNER) == earned
        assert reward.balance_of(OWNER) == balance
        assert pool.guard is GuardState.IDLE

        reward.on_transfer = None
        assert pool.get_reward(OWNER) == earned

    def test_reentrant_is_unauthorized(self):
        assert issubclass(Reentrant, Unauthorized)


class TestEventCommit:
    """Events reach subscribers only after the call commits."""

    def test_failed_call_publishes_nothing(self, pool):
        callback = Mock()
        pool.events.subscribe(callback)

        with pytest.raises(InsufficientAllowance):
            pool.stake(OWNER, STAKE)

        callback.assert_not_called()
        assert len(pool.events) == 0

    def test_committed_events_in_order(self, pool, staked, reward, clock):
        callback = Mock()
        pool.events.subscribe(callback)

        fund_and_notify(pool, reward)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(60)
        pool.exit(OWNER)

        names = [call.args[0].name for call in callback.call_args_list]
        assert names == [
            REWARD_DISTRIBUTION_SET,
            REWARD_ADDED,
            STAKED,
            WITHDRAWN,
            REWARD_PAID,
        ]
        assert [e.sequence for e in pool.events] == [1, 2, 3, 4, 5]
        assert pool.events.last(REWARD_PAID).timestamp == START + 60


# ============================================================================
# LEDGER EDGE CASES
# ============================================================================

class UnrevertibleToken(StandardToken):
    """Ledger whose writes cannot be rolled back."""

    def snapshot(self):
        return None

    def restore(self, snap):
        pass


class DrainableToken(StandardToken):
    """Ledger on which a holder can lose its whole balance without a transfer."""

    def drain(self, account):
        self._total_supply -= self._balances.pop(account, 0)


class TestLedgerRollback:
    """Pools only accept ledgers they can revert, and exit pays nothing it cannot finish."""

    def test_ledger_must_support_snapshot(self):
        class BareLedger(TokenLedger):
            def balance_of(self, account):
                return 0

            def transfer(self, sender, recipient, amount):
                return True

            def transfer_from(self, spender, owner, recipient, amount):
                return True

            def allowance(self, owner, spender):
                return 0

            def approve(self, owner, spender, amount):
                return True

        with pytest.raises(TypeError):
            BareLedger()

    @pytest.mark.parametrize("side", ["staked", "reward"])
    def test_unrevertible_ledger_rejected(self, side, clock):
        plain = StandardToken("PLAIN", supply=SUPPLY, holder=OWNER)
        unrevertible = UnrevertibleToken("RAW", supply=SUPPLY, holder=OWNER)
        ledgers = (unrevertible, plain) if side == "staked" else (plain, unrevertible)

        with pytest.raises(ValueError):
            StakingPool(*ledgers, DURATION, owner=OWNER, clock=clock)

    def test_exit_checks_reward_funds_before_any_transfer(self, pool, staked, clock):
        pool.set_reward_distribution(OWNER, OWNER)
        pool.notify_reward_amount(OWNER, REWARD)
        approve_and_stake(pool, staked, OWNER)
        clock.advance(3600)

        wallet = staked.balance_of(OWNER)
        staked.on_transfer = Mock()

        with pytest.raises(TransferFailed):
            pool.exit(OWNER)

        staked.on_transfer.assert_not_called()
        assert staked.balance_of(OWNER) == wallet
        assert pool.shares_of(OWNER) == STAKE
        assert pool.total_supply() == STAKE
        assert pool.events.filter(name=WITHDRAWN) == []


class TestDrainedPool:
    """A pool whose holdings vanished while shares are outstanding."""

    @pytest.fixture
    def drained(self, reward, clock):
        staked = DrainableToken("STAKED", supply=SUPPLY, holder=OWNER)
        pool = StakingPool(staked, reward, DURATION, owner=OWNER, clock=clock)
        staked.transfer(OWNER, OTHER, STAKE)
        approve_and_stake(pool, staked, OWNER)
        staked.drain(pool.address)
        return pool, staked

    def test_stake_rejected(self, drained):
        pool, staked = drained

        with pytest.raises(DivisionByZeroGuarded):
            approve_and_stake(pool, staked, OTHER)

        assert staked.balance_of(OTHER) == STAKE
        assert pool.shares_of(OTHER) == 0
        assert pool.total_shares == STAKE
        assert pool.events.filter(name=STAKED, account=OTHER) == []

    def test_stake_accepted_once_replenished(self, drained):
        pool, staked = drained
        staked.transfer(OWNER, pool.address, STAKE)

        assert approve_and_stake(pool, staked, OTHER) == STAKE
        assert pool.balance_of(OTHER) == STAKE
        assert pool.balance_of(OWNER) == STAKE


class TestFullExitBelowPar:
    """Full exits retire every share even when a share is worth less than a token."""

    USERS = ["a", "b", "c", "d", "e", "f"]

    def test_every_share_burned(self, pool, staked):
        # the pool is not fee-exempt: each stake arrives taxed
        for user in self.USERS:
            staked.transfer(OWNER, user, 997)
        for user in self.USERS:
            approve_and_stake(pool, staked, user, 997)

        assert pool.total_supply() < pool.total_shares

        for user in self.USERS:
            withdrawn, _ = pool.exit(user)

            assert withdrawn > 0
            assert pool.shares_of(user) == 0
            assert user not in pool.accounts()

        assert pool.total_shares == 0
        assert pool.accounts() == []

    def test_partial_withdraw_rounds_up(self, pool, staked):
        for user in self.USERS[:2]:
            staked.transfer(OWNER, user, 997)
            approve_and_stake(pool, staked, user, 997)

        shares = pool.shares_of("b")
        holdings, total = pool.total_supply(), pool.total_shares
        pool.withdraw("b", 10)

        burned = shares - pool.shares_of("b")
        assert burned * holdings >= 10 * total
        assert pool.shares_of("b") > 0
