"""
rebasepool/tokens.py

External token ledgers consumed by the staking pool.

The pool only talks to ledgers through the TokenLedger interface and queries
them live on every read. Two in-memory implementations are provided:

- StandardToken: plain fungible ledger, used as the reward asset
- ReflectionToken: fee-on-transfer ledger that redistributes part of every
  taxed transfer to all holders, so balances (including the pool's) grow
  without any call to the holder

Both support snapshot()/restore() so the pool can revert a failed call
across ledgers, an on_transfer hook, and fault injection via fail_transfers.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Set, Tuple

from .config import DEFAULT_TAX_FEE, DEFAULT_BURN_FEE
from .errors import LedgerInsufficientBalance, LedgerInsufficientAllowance

logger = logging.getLogger("rebasepool.tokens")


# Hook signature: (sender, recipient, amount)
TransferHook = Callable[[str, str, int], None]


class TokenLedger(ABC):
    """
    Abstract token ledger.

    Subclass this to back the pool with a different ledger (a chain RPC
    client, a database, ...). Transfers are synchronous and all-or-nothing
    per call; they either return True, return False, or raise LedgerError.
    snapshot() and restore() are required: a pool refuses a ledger it
    cannot revert.
    """

    symbol: str = ""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        """Current balance of account."""
        pass

    @abstractmethod
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move amount from sender to recipient."""
        pass

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        """Move amount from owner to recipient using spender's allowance."""
        pass

    @abstractmethod
    def allowance(self, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        pass

    @abstractmethod
    def snapshot(self) -> Any:
        """
        Capture ledger state for a later restore().

        The pool reverts every ledger it touched when a call fails, so a
        ledger that cannot roll back (a chain RPC client, say) has to stage
        its writes and return the staged batch here.
        """
        pass

    @abstractmethod
    def restore(self, snap: Any) -> None:
        """Restore state captured by snapshot()."""
        pass


def _check_amount(amount: int) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    return amount


# ============================================================================
# STANDARD TOKEN
# ============================================================================

class StandardToken(TokenLedger):
    """
    Plain fungible token ledger.

    Usage:
        reward = StandardToken("REWARD", supply=10**24, holder="alice")
        reward.transfer("alice", "pool", 10**21)
    """

    def __init__(
        self,
        symbol: str = "TOKEN",
        supply: int = 0,
        holder: Optional[str] = None,
    ):
        self.symbol = symbol
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0

        self.on_transfer: Optional[TransferHook] = None
        self.fail_transfers = False

        if supply and holder:
            self.mint(holder, supply)

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def mint(self, account: str, amount: int) -> None:
        _check_amount(amount)
        self._balances[account] = self._balances.get(account, 0) + amount
        self._total_supply += amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        _check_amount(amount)
        self._allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        _check_amount(amount)
        if self.fail_transfers:
            logger.debug(f"{self.symbol}: transfer {sender} -> {recipient} refused")
            return False
        self._move(sender, recipient, amount)
        self._notify(sender, recipient, amount)
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        _check_amount(amount)
        if self.fail_transfers:
            logger.debug(f"{self.symbol}: transfer_from {owner} -> {recipient} refused")
            return False
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise LedgerInsufficientAllowance(
                f"{self.symbol}: allowance {allowed} < {amount} for {spender}"
            )
        self._move(owner, recipient, amount)
        self._allowances[(owner, spender)] = allowed - amount
        self._notify(owner, recipient, amount)
        return True

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        balance = self.balance_of(sender)
        if balance < amount:
            raise LedgerInsufficientBalance(
                f"{self.symbol}: balance {balance} < {amount} for {sender}"
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    def _notify(self, sender: str, recipient: str, amount: int) -> None:
        if self.on_transfer:
            self.on_transfer(sender, recipient, amount)

    def snapshot(self) -> Any:
        return (dict(self._balances), dict(self._allowances), self._total_supply)

    def restore(self, snap: Any) -> None:
        balances, allowances, total = snap
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self._total_supply = total


# ============================================================================
# REFLECTION TOKEN
# ============================================================================

class ReflectionToken(TokenLedger):
    """
    Fee-on-transfer token that reflects part of every taxed transfer to all
    holders.

    Balances are stored in "reflected" units. A holder's token balance is
    reflected_balance // rate, where rate = reflected_total // token_total.
    Taking the tax fee out of reflected_total lowers the rate, so every
    holder's balance grows pro rata. The burn fee is removed from both
    totals and leaves the rate unchanged.

    Transfers where either side is fee-exempt are untaxed. The deployer is
    fee-exempt by default.

    Usage:
        staked = ReflectionToken("STAKED", supply=10**24, holder="alice")
        staked.exclude_from_fee("pool")
        staked.include_in_fee("alice")
    """

    MAX = 2**256 - 1

    def __init__(
        self,
        symbol: str = "REFLECT",
        supply: int = 10**24,
        holder: str = "deployer",
        tax_fee: int = DEFAULT_TAX_FEE,
        burn_fee: int = DEFAULT_BURN_FEE,
    ):
        _check_amount(supply)
        if supply == 0:
            raise ValueError("supply must be positive")
        if not (0 <= tax_fee and 0 <= burn_fee and tax_fee + burn_fee < 100):
            raise ValueError("fees must be non-negative and total under 100 percent")

        self.symbol = symbol
        self.tax_fee = tax_fee
        self.burn_fee = burn_fee

        self._t_total = supply
        self._r_total = self.MAX - (self.MAX % supply)
        self._t_fee_total = 0
        self._r_owned: Dict[str, int] = {holder: self._r_total}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._fee_exempt: Set[str] = {holder}

        self.on_transfer: Optional[TransferHook] = None
        self.fail_transfers = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def total_supply(self) -> int:
        return self._t_total

    def total_fees(self) -> int:
        """Total amount redistributed to holders so far."""
        return self._t_fee_total

    def _rate(self) -> int:
        return self._r_total // self._t_total

    def balance_of(self, account: str) -> int:
        return self._r_owned.get(account, 0) // self._rate()

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def is_excluded_from_fee(self, account: str) -> bool:
        return account in self._fee_exempt

    # ------------------------------------------------------------------
    # Fee configuration
    # ------------------------------------------------------------------

    def exclude_from_fee(self, account: str) -> None:
        self._fee_exempt.add(account)

    def include_in_fee(self, account: str) -> None:
        self._fee_exempt.discard(account)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        _check_amount(amount)
        self._allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        _check_amount(amount)
        if self.fail_transfers:
            logger.debug(f"{self.symbol}: transfer {sender} -> {recipient} refused")
            return False
        self._transfer(sender, recipient, amount)
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        _check_amount(amount)
        if self.fail_transfers:
            logger.debug(f"{self.symbol}: transfer_from {owner} -> {recipient} refused")
            return False
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise LedgerInsufficientAllowance(
                f"{self.symbol}: allowance {allowed} < {amount} for {spender}"
            )
        self._require_balance(owner, amount)
        self._allowances[(owner, spender)] = allowed - amount
        self._transfer(owner, recipient, amount)
        return True

    def _require_balance(self, sender: str, amount: int) -> None:
        rate = self._rate()
        r_sender = self._r_owned.get(sender, 0)
        if r_sender < amount * rate:
            raise LedgerInsufficientBalance(
                f"{self.symbol}: balance {r_sender // rate} < {amount} for {sender}"
            )

    def _transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._require_balance(sender, amount)
        rate = self._rate()
        r_amount = amount * rate
        r_sender = self._r_owned.get(sender, 0)

        taxed = sender not in self._fee_exempt and recipient not in self._fee_exempt
        t_fee = amount * self.tax_fee // 100 if taxed else 0
        t_burn = amount * self.burn_fee // 100 if taxed else 0
        r_fee = t_fee * rate
        r_burn = t_burn * rate

        self._r_owned[sender] = r_sender - r_amount
        self._r_owned[recipient] = self._r_owned.get(recipient, 0) + r_amount - r_fee - r_burn
        self._r_total -= r_fee + r_burn
        self._t_total -= t_burn
        self._t_fee_total += t_fee

        if taxed:
            logger.debug(
                f"{self.symbol}: {sender} -> {recipient} {amount} "
                f"(reflected {t_fee}, burned {t_burn})"
            )

        if self.on_transfer:
            self.on_transfer(sender, recipient, amount)

    # ------------------------------------------------------------------
    # Revert support
    # ------------------------------------------------------------------

    def snapshot(self) -> Any:
        return copy.deepcopy({
            "t_total": self._t_total,
            "r_total": self._r_total,
            "t_fee_total": self._t_fee_total,
            "r_owned": self._r_owned,
            "allowances": self._allowances,
            "fee_exempt": self._fee_exempt,
        })

    def restore(self, snap: Any) -> None:
        snap = copy.deepcopy(snap)
        self._t_total = snap["t_total"]
        self._r_total = snap["r_total"]
        self._t_fee_total = snap["t_fee_total"]
        self._r_owned = snap["r_owned"]
        self._allowances = snap["allowances"]
        self._fee_exempt = snap["fee_exempt"]
