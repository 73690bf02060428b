"""Tests for the variance detector — outlier jurors in flat and tier rooms."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from arbiter.identity.keycard import KeycardLedger
from arbiter.models.room import (
    Room,
    RoomDeadlines,
    RoomState,
    ScoringMode,
    Submission,
    TierVote,
    Vote,
)
from arbiter.policy.resolver import PolicyResolver
from arbiter.scoring.variance import VarianceDetector


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def detector() -> VarianceDetector:
    return VarianceDetector(PolicyResolver.from_config_dir(CONFIG_DIR))


def _room(mode: ScoringMode = ScoringMode.FLAT, contributors: int = 1) -> Room:
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
    for seq in range(1, contributors + 1):
        room.submissions[f"w{seq}"] = Submission(
            contributor=f"w{seq}",
            content_hash=f"sha256:{seq:064d}",
            submitted_utc=now,
            sequence=seq,
        )
    return room


def _flat(scores: list[int], unrevealed: int = 0) -> Room:
    room = _room()
    for i, score in enumerate(scores, 1):
        room.jury_pool.append(f"j{i}")
        room.votes[f"j{i}"] = Vote(
            juror=f"j{i}", commit_hash="sha256:" + "0" * 64, committed_utc=_now(),
            revealed=True, score=score,
        )
    for k in range(unrevealed):
        juror = f"late{k}"
        room.jury_pool.append(juror)
        room.votes[juror] = Vote(
            juror=juror, commit_hash="sha256:" + "0" * 64, committed_utc=_now(),
        )
    return room


def _tier(rankings: list[tuple[list[str], list[str]]]) -> Room:
    room = _room(ScoringMode.TIER, contributors=5)
    for i, (tier_a, tier_b) in enumerate(rankings, 1):
        room.jury_pool.append(f"j{i}")
        room.tier_votes[f"j{i}"] = TierVote(
            juror=f"j{i}", commit_hash="sha256:" + "0" * 64, committed_utc=_now(),
            revealed=True, tier_a=tier_a, tier_b=tier_b,
        )
    return room


class TestFlatVariance:
    def test_tight_cluster_not_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([80, 82, 85, 87, 90]))
        assert report.flagged_jurors == []
        assert report.valid_jurors == ["j1", "j2", "j3", "j4", "j5"]

    def test_distance_fifteen_is_not_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([50, 65]))
        assert report.flagged_jurors == []
        assert report.distances == {"j1": 15, "j2": 15}

    def test_distance_sixteen_is_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([50, 66]))
        assert report.flagged_jurors == ["j1", "j2"]
        assert report.valid_jurors == []

    def test_single_score_never_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([3]))
        assert report.valid_jurors == ["j1"]
        assert report.flagged_jurors == []

    def test_no_reveals(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([], unrevealed=3))
        assert report.valid_jurors == []
        assert report.flagged_jurors == []

    def test_single_outlier(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([80, 82, 85, 30]))
        assert report.flagged_jurors == ["j4"]
        assert report.valid_jurors == ["j1", "j2", "j3"]
        assert report.distances["j4"] == 50

    def test_widely_spread_all_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([0, 25, 50, 75, 100]))
        assert report.valid_jurors == []
        assert len(report.flagged_jurors) == 5

    def test_unrevealed_jurors_ignored(self, detector: VarianceDetector) -> None:
        report = detector.detect(_flat([80, 82], unrevealed=2))
        assert report.valid_jurors == ["j1", "j2"]
        assert "late0" not in report.flagged_jurors


class TestTierVariance:
    def test_agreement_not_flagged(self, detector: VarianceDetector) -> None:
        ranking = (["w1"], ["w2", "w3"])
        report = detector.detect(_tier([ranking, ranking, ranking]))
        assert report.flagged_jurors == []

    def test_a_versus_c_is_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_tier([
            (["w1"], ["w2", "w3"]),
            (["w1"], ["w2", "w3"]),
            (["w4"], ["w2", "w3"]),
        ]))
        assert report.flagged_jurors == ["j3"]
        assert report.distances["j3"] == 2

    def test_one_step_disagreement_not_flagged(self, detector: VarianceDetector) -> None:
        report = detector.detect(_tier([
            (["w1"], ["w2", "w3"]),
            (["w1"], ["w2", "w3"]),
            (["w2"], ["w1", "w3"]),
        ]))
        assert report.flagged_jurors == []
        assert report.distances["j3"] == 1


class TestMarkAndRecord:
    def test_mark_sets_vote_flag(self, detector: VarianceDetector) -> None:
        room = _flat([80, 82, 85, 30])
        report = detector.detect(room)
        detector.mark(room, report)
        assert room.votes["j4"].flagged
        assert not room.votes["j1"].flagged

    def test_record_flags_increments_keycards(self, detector: VarianceDetector) -> None:
        keycards = KeycardLedger()
        for juror in ("j1", "j2", "j3", "j4"):
            keycards.mint(juror, now=_now())
        report = detector.detect(_flat([80, 82, 85, 30]))
        detector.record_flags(report, keycards)
        assert keycards.get("j4").variance_flags == 1
        assert keycards.get("j1").variance_flags == 0
