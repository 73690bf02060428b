"""Tests for the keycard ledger and the eligibility registry."""

import pytest
from datetime import datetime, timezone

from arbiter.errors import DuplicateError, NotFoundError, OutOfRangeError
from arbiter.identity.keycard import KeycardLedger
from arbiter.review.eligibility import EligibilityRegistry


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestMinting:
    def test_mint_creates_zeroed_card(self) -> None:
        ledger = KeycardLedger()
        card = ledger.mint("alice", now=_now())
        assert card.owner == "alice"
        assert card.tasks_completed == 0
        assert card.average_score == 0
        assert ledger.has_identity("alice")
        assert ledger.count == 1

    def test_one_card_per_owner(self) -> None:
        ledger = KeycardLedger()
        ledger.mint("alice")
        with pytest.raises(DuplicateError):
            ledger.mint("alice")

    def test_blank_owner_rejected(self) -> None:
        with pytest.raises(OutOfRangeError):
            KeycardLedger().mint("  ")

    def test_no_identity_without_card(self) -> None:
        assert not KeycardLedger().has_identity("bob")


class TestCounters:
    def test_jury_counters(self) -> None:
        ledger = KeycardLedger()
        ledger.mint("j1")
        ledger.increment_jury_participation("j1")
        ledger.increment_jury_participation("j1")
        ledger.increment_variance_flags("j1")
        card = ledger.get("j1")
        assert card.jury_participations == 2
        assert card.variance_flags == 1

    def test_running_average_floors(self) -> None:
        ledger = KeycardLedger()
        ledger.mint("w1")
        ledger.add_task_completion("w1", 88)
        ledger.add_task_completion("w1", 75)
        card = ledger.get("w1")
        assert card.tasks_completed == 2
        # (88 * 1 + 75) // 2 = 81
        assert card.average_score == 81

    def test_unknown_owner_rejected(self) -> None:
        ledger = KeycardLedger()
        with pytest.raises(NotFoundError):
            ledger.increment_jury_participation("ghost")
        with pytest.raises(NotFoundError):
            ledger.add_task_completion("ghost", 50)

    def test_snapshot_is_independent(self) -> None:
        ledger = KeycardLedger()
        ledger.mint("w1")
        snap = ledger.snapshot()
        ledger.add_task_completion("w1", 90)
        ledger.restore(snap)
        assert ledger.get("w1").tasks_completed == 0

    def test_restore_updates_held_cards(self) -> None:
        ledger = KeycardLedger()
        held = ledger.mint("w1")
        snap = ledger.snapshot()
        ledger.add_task_completion("w1", 90)
        ledger.mint("w2")
        ledger.restore(snap)
        assert ledger.get("w1") is held
        assert held.tasks_completed == 0
        assert held.average_score == 0
        assert not ledger.has_identity("w2")


class TestEligibility:
    def test_registration_order_preserved(self) -> None:
        registry = EligibilityRegistry()
        for juror in ("j3", "j1", "j2"):
            registry.add("design", juror)
        assert registry.eligible_jurors("design") == ["j3", "j1", "j2"]
        assert registry.count("design") == 3

    def test_categories_are_separate(self) -> None:
        registry = EligibilityRegistry()
        registry.add("design", "j1")
        registry.add("code", "j2")
        assert registry.is_eligible("design", "j1")
        assert not registry.is_eligible("design", "j2")
        assert registry.categories() == ["code", "design"]

    def test_duplicate_rejected(self) -> None:
        registry = EligibilityRegistry()
        registry.add("design", "j1")
        with pytest.raises(DuplicateError):
            registry.add("design", "j1")

    def test_remove(self) -> None:
        registry = EligibilityRegistry()
        registry.add("design", "j1")
        registry.remove("design", "j1")
        assert registry.eligible_jurors("design") == []
        with pytest.raises(NotFoundError):
            registry.remove("design", "j1")

    def test_unknown_category_is_empty(self) -> None:
        assert EligibilityRegistry().eligible_jurors("music") == []
