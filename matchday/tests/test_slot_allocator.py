"""
Tests for join/leave: idempotence, preferences, side balancing and the slot race.
"""
from __future__ import annotations

import threading
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from matchday.models import Side, VerificationStatus
from matchday.persistence.db import get_connection
from matchday.persistence.repositories import MatchRepository
from matchday.roster import has_unique_occupants
from matchday.services.errors import (
    ConflictError,
    InvalidError,
    NoPreferredSlotOpenError,
    NotFoundError,
    SlotTakenError,
)
from matchday.services.match_service import MatchService
from matchday.services.slot_allocator import SlotAllocator


@pytest.fixture
def allocator():
    return SlotAllocator()


@pytest.fixture
def match(db_conn, make_player):
    owner = make_player("organiser")
    return MatchService().create_match(db_conn, owner.id, fmt="5v5")


def _revision(db_conn, match_id: str) -> int:
    return MatchRepository().get(db_conn, match_id).roster_revision


def test_join_named_position(db_conn, allocator, match, make_player):
    p = make_player("keeper")
    result = allocator.join(db_conn, match.id, p.id, "gk", "B")
    assert result.position == "GK"
    assert result.team == Side.B
    assert result.already_joined is False
    assert _revision(db_conn, match.id) == 1


def test_join_twice_is_idempotent(db_conn, allocator, match, make_player):
    p = make_player("keeper")
    first = allocator.join(db_conn, match.id, p.id, "GK")
    second = allocator.join(db_conn, match.id, p.id, "GK")
    third = allocator.join(db_conn, match.id, p.id, "ST", "B")
    assert (second.position, second.team) == (first.position, first.team)
    assert second.already_joined is True
    assert (third.position, third.team) == (first.position, first.team)
    assert _revision(db_conn, match.id) == 1


def test_join_balances_sides_then_conflicts(db_conn, allocator, match, make_player):
    p1, p2, p3 = make_player("k1"), make_player("k2"), make_player("k3")
    assert allocator.join(db_conn, match.id, p1.id, "GK").team == Side.A
    assert allocator.join(db_conn, match.id, p2.id, "GK").team == Side.B
    with pytest.raises(SlotTakenError) as exc_info:
        allocator.join(db_conn, match.id, p3.id, "GK")
    assert exc_info.value.code == "slot_taken"


def test_join_taken_side_conflicts_even_if_other_side_free(db_conn, allocator, match, make_player):
    p1, p2 = make_player("k1"), make_player("k2")
    allocator.join(db_conn, match.id, p1.id, "GK", "A")
    with pytest.raises(SlotTakenError):
        allocator.join(db_conn, match.id, p2.id, "GK", "A")


def test_join_position_not_on_roster_is_slot_taken(db_conn, allocator, match, make_player):
    p = make_player("p")
    with pytest.raises(SlotTakenError):
        allocator.join(db_conn, match.id, p.id, "RW")
    with pytest.raises(SlotTakenError):
        allocator.join(db_conn, match.id, p.id, "qb", "A")
    assert _revision(db_conn, match.id) == 0


def test_join_unknown_team(db_conn, allocator, match, make_player):
    with pytest.raises(InvalidError):
        allocator.join(db_conn, match.id, make_player("p").id, "GK", "C")


def test_join_unknown_match(db_conn, allocator, make_player):
    with pytest.raises(NotFoundError):
        allocator.join(db_conn, "missing", make_player("p").id, "GK")


def test_join_uses_first_open_preference(db_conn, allocator, match, make_player):
    taker1, taker2 = make_player("t1"), make_player("t2")
    allocator.join(db_conn, match.id, taker1.id, "ST")
    allocator.join(db_conn, match.id, taker2.id, "ST")
    p = make_player("flex", positions=["st", "lw", "gk"])
    result = allocator.join(db_conn, match.id, p.id)
    assert result.position == "LW"


def test_join_without_open_preference(db_conn, allocator, match, make_player):
    nobody = make_player("nobody")
    with pytest.raises(NoPreferredSlotOpenError):
        allocator.join(db_conn, match.id, nobody.id)
    picky = make_player("picky", positions=["QB"])
    with pytest.raises(NoPreferredSlotOpenError) as exc_info:
        allocator.join(db_conn, match.id, picky.id)
    assert exc_info.value.code == "no_preferred_slot_open"
    assert _revision(db_conn, match.id) == 0


def test_leave_is_idempotent(db_conn, allocator, match, make_player):
    p = make_player("p")
    allocator.join(db_conn, match.id, p.id, "CB")
    assert allocator.leave(db_conn, match.id, p.id) is True
    assert allocator.leave(db_conn, match.id, p.id) is False
    stored = MatchRepository().get(db_conn, match.id)
    assert p.id not in stored.participant_ids()
    assert stored.roster_revision == 2


def test_closed_match_rejects_join_and_ignores_leave(db_conn, allocator, match, make_player):
    p, q = make_player("p"), make_player("q")
    allocator.join(db_conn, match.id, p.id, "CB")
    MatchRepository().set_status(db_conn, match.id, VerificationStatus.VERIFIED)
    with pytest.raises(ConflictError) as exc_info:
        allocator.join(db_conn, match.id, q.id, "GK")
    assert exc_info.value.code == "match_closed"
    assert allocator.leave(db_conn, match.id, p.id) is False
    assert p.id in MatchRepository().get(db_conn, match.id).participant_ids()


def test_many_joins_keep_slots_exclusive(db_conn, allocator, match, make_player):
    placed = []
    for i in range(14):
        p = make_player(f"p{i}", positions=["GK", "CB", "SUB"])
        try:
            placed.append((p.id, allocator.join(db_conn, match.id, p.id)))
        except NoPreferredSlotOpenError:
            pass
    for player_id, first in placed:
        again = allocator.join(db_conn, match.id, player_id)
        assert (again.position, again.team) == (first.position, first.team)
    stored = MatchRepository().get(db_conn, match.id)
    assert has_unique_occupants(stored.slots)
    assert len(stored.participant_ids()) == 8


def test_concurrent_joins_for_last_slot(db_conn, db_path, make_player):
    """Two players racing for one free slot: one placement, one SlotTakenError."""
    owner = make_player("organiser")
    match = MatchService().create_match(db_conn, owner.id, positions=["GK"], reserves_per_team=0)
    players = [make_player("racer-1"), make_player("racer-2")]
    barrier = threading.Barrier(2)
    results: list[object] = []
    lock = threading.Lock()

    def _race(player_id: str) -> None:
        conn = get_connection(db_path)
        try:
            barrier.wait()
            outcome: object = SlotAllocator().join(conn, match.id, player_id, "GK", "A")
        except SlotTakenError as exc:
            outcome = exc
        finally:
            conn.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=_race, args=(p.id,)) for p in players]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == 2
    assert sum(isinstance(r, SlotTakenError) for r in results) == 1
    stored = MatchRepository().get(db_conn, match.id)
    gk_a = [s for s in stored.slots if s.team == Side.A and s.position == "GK"]
    assert len(gk_a) == 1
    assert gk_a[0].occupant_id in {p.id for p in players}
    assert stored.roster_revision == 1
