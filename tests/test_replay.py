"""
Unit tests for single-use proof bookkeeping
"""

from pixelpay.payments.replay import UsedProofs


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestUsedProofs:
    def test_membership_until_expiry(self):
        clock = FakeClock()
        proofs = UsedProofs(clock)

        proofs.add("0xabc:0x01", expires_at=1300)
        assert "0xabc:0x01" in proofs

        clock.now = 1300
        assert proofs.prune() == 1
        assert "0xabc:0x01" not in proofs

    def test_adding_prunes_expired_entries(self):
        clock = FakeClock()
        proofs = UsedProofs(clock)
        proofs.add("old", expires_at=1010)
        proofs.add("live", expires_at=5000)

        clock.now = 2000
        proofs.add("new", expires_at=2300)

        assert len(proofs) == 2
        assert "old" not in proofs

    def test_discard(self):
        proofs = UsedProofs(FakeClock())
        proofs.add("p", expires_at=9999)

        proofs.discard("p")
        proofs.discard("never-added")

        assert len(proofs) == 0
