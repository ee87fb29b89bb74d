"""
Single-use bookkeeping for payment proofs

A proof is only accepted until its authorization's validBefore, so an entry
can be forgotten once that moment has passed.
"""

import time
from typing import Callable, Dict


class UsedProofs:
    """Proof ids mapped to the unix time after which they can no longer be presented"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._expiry: Dict[str, int] = {}
        self._clock = clock

    def __contains__(self, proof_id: str) -> bool:
        return proof_id in self._expiry

    def __len__(self) -> int:
        return len(self._expiry)

    def add(self, proof_id: str, expires_at: int) -> None:
        self.prune()
        self._expiry[proof_id] = expires_at

    def discard(self, proof_id: str) -> None:
        self._expiry.pop(proof_id, None)

    def prune(self) -> int:
        """Drop expired entries, returning how many were dropped"""
        now = self._clock()
        expired = [proof_id for proof_id, expires_at in self._expiry.items() if expires_at <= now]
        for proof_id in expired:
            del self._expiry[proof_id]
        return len(expired)
