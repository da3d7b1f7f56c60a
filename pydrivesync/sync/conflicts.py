"""Conflict resolution for files changed on both sides."""

from enum import Enum
from typing import Literal, Optional

from ..utils import DEFAULT_TOLERANCE_MS

Winner = Literal["local", "remote"]


class ConflictPolicy(str, Enum):
    """Which side wins when both sides changed since the last sync."""

    LOCAL = "local"
    """Local version always wins"""

    REMOTE = "remote"
    """Remote version always wins"""

    NEWER = "newer"
    """The more recently modified version wins"""

    ASK = "ask"
    """Behaves like NEWER; interactive choice belongs to the UI layer"""


class ConflictResolver:
    """Picks the winning side of a conflict according to a policy."""

    def __init__(
        self,
        policy: ConflictPolicy = ConflictPolicy.NEWER,
        tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    ):
        """Initialize conflict resolver.

        Args:
            policy: Conflict policy
            tolerance_ms: Timestamps closer than this are treated as equal
        """
        self.policy = ConflictPolicy(policy)
        self.tolerance_ms = tolerance_ms

    def within_tolerance(
        self, local_mod_time: Optional[int], remote_mod_time: Optional[int]
    ) -> bool:
        """Check whether two modification times are close enough to be equal.

        A conflict whose timestamps agree within the tolerance is treated as
        already synchronized: both stores just report the same edit with
        different precision.
        """
        if local_mod_time is None or remote_mod_time is None:
            return False
        return abs(local_mod_time - remote_mod_time) <= self.tolerance_ms

    def resolve(
        self,
        local_mod_time: Optional[int],
        remote_mod_time: Optional[int],
        policy: Optional[ConflictPolicy] = None,
    ) -> Winner:
        """Decide which side wins.

        Args:
            local_mod_time: Local modification time (ms)
            remote_mod_time: Remote modification time (ms)
            policy: Overrides the resolver's policy for this call

        Returns:
            "local" or "remote"
        """
        policy = ConflictPolicy(policy) if policy is not None else self.policy
        if policy is ConflictPolicy.LOCAL:
            return "local"
        if policy is ConflictPolicy.REMOTE:
            return "remote"

        # NEWER and ASK: larger timestamp wins, local on a tie
        if (remote_mod_time or 0) > (local_mod_time or 0):
            return "remote"
        return "local"
