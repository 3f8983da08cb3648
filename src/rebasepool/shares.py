"""
rebasepool/shares.py

Elastic Share Ledger arithmetic.

Stakers hold shares, not token amounts. A share is priced against the pool's
live holdings of the staked asset:

    balance_of(a) = shares[a] * holdings / total_shares

so passive growth of the holdings is split pro rata across existing holders.
Rounding always goes against the caller: floor when minting, ceiling when
burning.
"""

from typing import Optional

from .errors import DivisionByZeroGuarded


def balance_of(shares: int, total_shares: int, holdings: int) -> int:
    """Token value of shares at the current holdings. 0 while nothing is staked."""
    if total_shares == 0:
        return 0
    return shares * holdings // total_shares


def shares_for_deposit(amount: int, total_shares: int, holdings_before: int) -> int:
    """
    Shares minted for a deposit of amount, priced at the pre-transfer holdings.

    The first deposit mints 1:1. A pool whose holdings were drained to zero
    while shares are still outstanding has no price, so it takes no deposits
    until its holdings are replenished.
    """
    if total_shares == 0:
        return amount
    if holdings_before == 0:
        raise DivisionByZeroGuarded(
            f"{total_shares} shares outstanding against zero holdings"
        )
    return amount * total_shares // holdings_before


def shares_for_withdrawal(
    amount: int,
    total_shares: int,
    holdings: int,
    account_shares: Optional[int] = None,
) -> int:
    """
    Shares burned to withdraw amount, rounded up.

    When account_shares is given the result is capped at it, so withdrawing
    an account's full balance_of never needs more shares than it holds.
    """
    if total_shares == 0 or holdings == 0:
        return 0
    burn = -(-amount * total_shares // holdings)
    if account_shares is not None and burn > account_shares:
        burn = account_shares
    return burn
