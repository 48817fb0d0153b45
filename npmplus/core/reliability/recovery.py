"""
Recovery policy — when a failed package-manager run is worth retrying.

npm (and tools built on its arborist) sometimes die with::

    npm ERR! Tracker "idealTree" already exists

because a previous run left in-process state behind.  Clearing the
manager's cache and trying again usually works.  Every other failure is
returned to the caller untouched: retrying a bad package name or a
network outage only burns time.

The policy is pure data plus a predicate; the loop that applies it
lives in the process executor so attempt state stays visible there.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from npmplus.core.models.operation import ExecutionOutcome

logger = logging.getLogger(__name__)

TRACKER_SIGNATURE = re.compile(r'tracker\s+"?[^"\s]*"?\s+already\s+exists', re.IGNORECASE)


@dataclass(frozen=True)
class RecoveryPolicy:
    """Bounded retry with a fixed delay for one known failure signature.

    Attributes:
        max_attempts: Total attempts including the first (>= 1).
        backoff_seconds: Fixed pause after the state reset, before retrying.
        signature: Pattern searched for in stderr, stdout and error text.
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    signature: re.Pattern[str] = field(default=TRACKER_SIGNATURE)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")

    def is_recoverable(self, outcome: ExecutionOutcome) -> bool:
        """Whether a failed outcome carries the recoverable signature."""
        if outcome.ok:
            return False
        for text in (outcome.stderr, outcome.stdout, outcome.error or ""):
            if text and self.signature.search(text):
                return True
        return False

    def should_retry(self, outcome: ExecutionOutcome, attempt: int) -> bool:
        """Whether to reset state and run attempt ``attempt + 1``."""
        if attempt >= self.max_attempts:
            if self.is_recoverable(outcome):
                logger.warning(
                    "Stale tracker persists after %d attempts, giving up", attempt,
                )
            return False
        return self.is_recoverable(outcome)
