"""
rebasepool/errors.py

Exceptions raised by the staking pool and its reference ledgers.

Every pool entry point is all-or-nothing: when one of these escapes a
mutating call, pool and ledger state are exactly as they were before it.
"""


class PoolError(Exception):
    """Base class for all staking pool failures."""


class Unauthorized(PoolError):
    """Caller lacks the owner or reward distribution role."""


class Reentrant(Unauthorized):
    """An entry point was invoked while another one was still running."""


class InvalidAmount(PoolError, ValueError):
    """Zero or negative amount where a positive one is required."""


class InsufficientBalance(PoolError):
    """Withdrawal exceeds the caller's share-derived balance."""


class TransferFailed(PoolError):
    """An external ledger call did not complete."""


class InsufficientAllowance(TransferFailed):
    """The staked asset ledger refused to pull funds for lack of allowance."""


class DivisionByZeroGuarded(PoolError):
    """
    A share price was needed where none exists.

    Raised when a stake arrives while shares are outstanding against zero
    holdings (the staked asset was drained or rebased away). Minting 1:1
    there would hand the new deposit to the old share holders.
    """


# ============================================================================
# LEDGER ERRORS
# ============================================================================

class LedgerError(Exception):
    """Raised by a token ledger when a transfer cannot be applied."""


class LedgerInsufficientBalance(LedgerError):
    """Sender does not hold enough tokens."""


class LedgerInsufficientAllowance(LedgerError):
    """Spender is not approved for enough tokens."""
