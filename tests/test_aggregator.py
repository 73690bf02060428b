"""Tests for the aggregator — median, weighted finals, tier majority and slots."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

from arbiter.models.room import (
    Room,
    RoomDeadlines,
    RoomState,
    ScoringMode,
    Submission,
    Tier,
    TierVote,
    Vote,
)
from arbiter.policy.resolver import PolicyResolver
from arbiter.scoring.aggregator import (
    Aggregator,
    final_score,
    majority_tier,
    median,
    tier_final,
    tier_slots,
)


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def aggregator() -> Aggregator:
    return Aggregator(PolicyResolver.from_config_dir(CONFIG_DIR))


def _room(
    mode: ScoringMode,
    client_scores: dict[str, Optional[int]],
) -> Room:
    now = _now()
    room = Room(
        room_id="ROOM-00000001",
        client="client-1",
        category="design",
        task_hash="sha256:" + "a" * 64,
        reward=Decimal("500"),
        deadlines=RoomDeadlines(
            submission_utc=now + timedelta(days=1),
            commit_utc=now + timedelta(days=2),
            reveal_utc=now + timedelta(days=3),
        ),
        created_utc=now,
        mode=mode,
        state=RoomState.JURY_REVEAL,
    )
    for seq, (contributor, score) in enumerate(client_scores.items(), 1):
        room.submissions[contributor] = Submission(
            contributor=contributor,
            content_hash=f"sha256:{seq:064d}",
            submitted_utc=now,
            sequence=seq,
            client_score=score,
        )
    return room


def _add_flat_votes(room: Room, scores: dict[str, int]) -> None:
    for juror, score in scores.items():
        room.jury_pool.append(juror)
        room.votes[juror] = Vote(
            juror=juror, commit_hash="sha256:" + "0" * 64, committed_utc=_now(),
            revealed=True, score=score,
        )


def _add_tier_votes(room: Room, rankings: dict[str, tuple[list[str], list[str]]]) -> None:
    for juror, (tier_a, tier_b) in rankings.items():
        room.jury_pool.append(juror)
        room.tier_votes[juror] = TierVote(
            juror=juror, commit_hash="sha256:" + "0" * 64, committed_utc=_now(),
            revealed=True, tier_a=tier_a, tier_b=tier_b,
        )


class TestMedian:
    def test_empty_is_zero(self) -> None:
        assert median([]) == 0

    def test_single(self) -> None:
        assert median([85]) == 85

    def test_odd_count_takes_middle(self) -> None:
        assert median([90, 70, 80]) == 80

    def test_even_count_floors_midpoint(self) -> None:
        assert median([80, 85]) == 82
        assert median([80, 90]) == 85

    def test_input_order_irrelevant(self) -> None:
        assert median([90, 80, 82, 87, 85]) == median([80, 82, 85, 87, 90]) == 85


class TestFinalScore:
    def test_weighted_sixty_forty(self) -> None:
        assert final_score(90, 80) == 86

    def test_equal_inputs(self) -> None:
        assert final_score(80, 80) == 80

    def test_floors(self) -> None:
        # (91*60 + 80*40) / 100 = 86.6
        assert final_score(91, 80) == 86

    def test_bounds(self) -> None:
        assert final_score(0, 0) == 0
        assert final_score(100, 100) == 100


class TestTierFinal:
    def test_tier_a(self) -> None:
        assert tier_final(100, Tier.A) == 100

    def test_tier_b(self) -> None:
        assert tier_final(90, Tier.B) == 84

    def test_tier_c(self) -> None:
        assert tier_final(50, Tier.C) == 50

    def test_custom_tier_scores(self) -> None:
        scores = {Tier.A: 30, Tier.B: 20, Tier.C: 10}
        assert tier_final(100, Tier.C, 60, scores) == 70


class TestMajorityTier:
    def test_clear_majority(self) -> None:
        assert majority_tier([Tier.A, Tier.C, Tier.C]) == Tier.C

    def test_tie_favours_higher_tier(self) -> None:
        assert majority_tier([Tier.A, Tier.B]) == Tier.A
        assert majority_tier([Tier.C, Tier.B]) == Tier.B

    def test_empty_defaults_to_c(self) -> None:
        assert majority_tier([]) == Tier.C


class TestTierSlots:
    @pytest.mark.parametrize("n,expected", [
        (5, (1, 2)),
        (15, (3, 4)),
        (25, (5, 7)),
        (0, (0, 0)),
        (1, (1, 0)),
        (2, (1, 1)),
        (10, (2, 3)),
    ])
    def test_slot_counts(self, n: int, expected: tuple[int, int]) -> None:
        assert tier_slots(n) == expected

    def test_slots_never_exceed_contributors(self) -> None:
        for n in range(0, 60):
            a, b = tier_slots(n)
            assert a + b <= n

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            tier_slots(-1)


class TestAggregateFlat:
    def test_median_of_valid_jurors_only(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.FLAT, {"w1": 90})
        _add_flat_votes(room, {"j1": 80, "j2": 82, "j3": 85, "j4": 30})
        result = aggregator.aggregate(room, ["j1", "j2", "j3"], ["j4"])
        assert result.jury_score == 82
        assert result.flagged_jurors == ["j4"]
        assert not result.is_empty

    def test_no_valid_jurors_is_empty(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.FLAT, {"w1": 90})
        result = aggregator.aggregate(room, [], [])
        assert result.is_empty
        assert result.jury_score == 0

    def test_final_scores_in_submission_order(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.FLAT, {"w2": 70, "w1": 90})
        _add_flat_votes(room, {"j1": 85})
        result = aggregator.aggregate(room, ["j1"], [])
        finals = aggregator.final_scores(room, result)
        assert list(finals) == ["w2", "w1"]
        assert finals == {"w2": 76, "w1": 88}

    def test_unscored_contributor_counts_as_zero(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.FLAT, {"w1": None})
        _add_flat_votes(room, {"j1": 85})
        result = aggregator.aggregate(room, ["j1"], [])
        assert aggregator.final_scores(room, result) == {"w1": 34}


class TestAggregateTier:
    def test_majority_per_contributor(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.TIER, {"w1": 50, "w2": 90, "w3": 60, "w4": 100, "w5": 0})
        _add_tier_votes(room, {
            "j1": (["w1"], ["w2", "w3"]),
            "j2": (["w1"], ["w2", "w3"]),
            "j3": (["w2"], ["w1", "w3"]),
        })
        result = aggregator.aggregate(room, ["j1", "j2", "j3"], [])
        assert result.majority_tiers == {
            "w1": Tier.A, "w2": Tier.B, "w3": Tier.B, "w4": Tier.C, "w5": Tier.C,
        }
        finals = aggregator.final_scores(room, result)
        assert finals == {"w1": 70, "w2": 84, "w3": 66, "w4": 80, "w5": 20}

    def test_flagged_jurors_do_not_count(self, aggregator: Aggregator) -> None:
        room = _room(ScoringMode.TIER, {"w1": 0, "w2": 0, "w3": 0, "w4": 0, "w5": 0})
        _add_tier_votes(room, {
            "j1": (["w1"], ["w2", "w3"]),
            "j2": (["w5"], ["w4", "w3"]),
        })
        result = aggregator.aggregate(room, ["j1"], ["j2"])
        assert result.majority_tiers["w5"] == Tier.C
        assert result.majority_tiers["w1"] == Tier.A
