"""
rebasepool/access.py

Access control gate for administrative pool calls.

Two roles:
- owner: may appoint the reward distributor and hand over ownership
- reward distribution: may notify new reward amounts
"""

import logging
from typing import Optional

from .errors import Unauthorized

logger = logging.getLogger("rebasepool.access")


ROLE_OWNER = "owner"
ROLE_DISTRIBUTION = "distribution"


class AccessControl:
    """
    Ownable gate with a single reward distribution role.

    Usage:
        gate = AccessControl(owner="alice")
        gate.require("alice", ROLE_OWNER)
        gate.set_reward_distribution("alice", "bob")
        gate.is_authorized("bob", ROLE_DISTRIBUTION)  # True
    """

    def __init__(self, owner: str, reward_distribution: Optional[str] = None):
        if not owner:
            raise ValueError("owner is required")
        self.owner = owner
        self.reward_distribution = reward_distribution

    def is_authorized(self, caller: str, role: str) -> bool:
        """Check whether caller holds role."""
        if role == ROLE_OWNER:
            return caller == self.owner
        if role == ROLE_DISTRIBUTION:
            return self.reward_distribution is not None and caller == self.reward_distribution
        raise ValueError(f"Unknown role: {role}")

    def require(self, caller: str, role: str) -> None:
        """Raise Unauthorized unless caller holds role."""
        if not self.is_authorized(caller, role):
            logger.warning(f"Rejected {caller}: missing {role} role")
            if role == ROLE_OWNER:
                raise Unauthorized("caller is not the owner")
            raise Unauthorized("caller is not the reward distribution")

    def set_reward_distribution(self, caller: str, distributor: str) -> None:
        self.require(caller, ROLE_OWNER)
        if not distributor:
            raise ValueError("distributor address is required")
        self.reward_distribution = distributor

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand ownership to new_owner. Returns the previous owner."""
        self.require(caller, ROLE_OWNER)
        if not new_owner:
            raise ValueError("new owner is the zero address")
        previous, self.owner = self.owner, new_owner
        return previous

    def snapshot(self) -> tuple:
        return (self.owner, self.reward_distribution)

    def restore(self, snap: tuple) -> None:
        self.owner, self.reward_distribution = snap
