"""
Single-elimination brackets: build, advance, finalize.

Build lays the whole bracket out as an arena of BracketNode (forward links are
arena indices), checks the graph is acyclic with a single final, then persists
every round at once. Later rounds start with empty alliances.

Advance moves a completed match's winning roster into the match it feeds. Its
position among its round's matches (by bracket slot) picks the side: even →
red, odd → blue. Station positions are kept. A match advances once; a second
call is an error, not a silent rewrite.

Finalize places teams once every match is completed: final winner 1, final
loser 2, losers of the round d steps before the final 2**d + 1. Ranks go to the
playoff stage's own TeamStats rows; the seeding stage's standings are not touched.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlmodel import Session, select

from match_scheduler.database import PLAYOFF_SLOT_MINUTES
from match_scheduler.exceptions import (
    BracketStateError,
    InsufficientTeamsError,
    MatchNotFoundError,
    ScheduleConfigurationError,
)
from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED, Alliance, TeamAlliance
from match_scheduler.models.match import MATCH_COMPLETED, MATCH_PENDING, Match
from match_scheduler.models.stage import STAGE_COMPLETED, StageType
from match_scheduler.models.team_stats import TeamStats
from match_scheduler.services import notifications
from match_scheduler.services.optimized_schedule import (
    add_alliance,
    next_bracket_slot,
    next_match_number,
    tournament_fields,
)
from match_scheduler.services.rosters import MatchRoster, load_match_roster
from match_scheduler.services.standings_service import get_seeding_standings, get_stage_or_raise
from match_scheduler.utils.stage_locks import stage_lock

logger = logging.getLogger(__name__)


# ============================================================================
# Bracket layout (pure)
# ============================================================================


@dataclass
class BracketNode:
    """One bracket match before it is persisted."""
    index: int  # arena index, also creation order
    round_number: int
    position: int  # index within its round
    red: List[int] = field(default_factory=list)
    blue: List[int] = field(default_factory=list)
    feeds_into: Optional[int] = None
    loser_feeds_into: Optional[int] = None


def plan_bracket(seed_team_ids: List[int], round_count: int) -> List[BracketNode]:
    """Lay out a 2**round_count bracket. seed_team_ids[0] is the top seed.

    Round 1 match i: seed i (red) vs seed N-1-i (blue). Round r match i feeds
    round r+1 match i // 2.
    """
    size = 2 ** round_count
    if len(seed_team_ids) != size:
        raise ValueError(f"Expected {size} seeds, got {len(seed_team_ids)}")

    nodes: List[BracketNode] = []
    by_round: List[List[BracketNode]] = []
    for round_number in range(1, round_count + 1):
        count = size // 2 ** round_number
        round_nodes = []
        for position in range(count):
            node = BracketNode(index=len(nodes), round_number=round_number, position=position)
            if round_number == 1:
                node.red = [seed_team_ids[position]]
                node.blue = [seed_team_ids[size - 1 - position]]
            nodes.append(node)
            round_nodes.append(node)
        by_round.append(round_nodes)

    for current, following in zip(by_round, by_round[1:]):
        for node in current:
            node.feeds_into = following[node.position // 2].index

    validate_bracket(nodes)
    return nodes


def validate_bracket(nodes: List[BracketNode]) -> None:
    """Forward links must form a DAG with exactly one node (the final) lacking a winner link."""
    finals = [n for n in nodes if n.feeds_into is None]
    if len(finals) != 1:
        raise ScheduleConfigurationError(f"Bracket must have exactly one final, found {len(finals)}")

    indegree = {n.index: 0 for n in nodes}
    edges: Dict[int, List[int]] = {n.index: [] for n in nodes}
    for node in nodes:
        for target in (node.feeds_into, node.loser_feeds_into):
            if target is None:
                continue
            if target not in indegree:
                raise ScheduleConfigurationError(f"Bracket node {node.index} links to unknown node {target}")
            edges[node.index].append(target)
            indegree[target] += 1

    queue = deque(i for i, d in indegree.items() if d == 0)
    visited = 0
    while queue:
        current = queue.popleft()
        visited += 1
        for target in edges[current]:
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)
    if visited != len(nodes):
        raise ScheduleConfigurationError("Bracket links contain a cycle")


# ============================================================================
# Build
# ============================================================================


def build_bracket(
    session: Session,
    stage_id: int,
    round_count: int,
    *,
    source_stage_id: Optional[int] = None,
    start_time: Optional[datetime] = None,
) -> List[Match]:
    """Seed and persist a single-elimination bracket of 2**round_count teams.

    Seeds come from the standings of source_stage_id, or of the latest ranked
    non-playoff stage in the tournament when none is given.
    """
    stage = get_stage_or_raise(session, stage_id)
    if stage.stage_type != StageType.playoff:
        raise ScheduleConfigurationError(f"Stage {stage_id} is not a playoff stage")
    if round_count < 1:
        raise ScheduleConfigurationError(f"round_count must be >= 1, got {round_count}")

    fields = tournament_fields(session, stage.tournament_id)
    size = 2 ** round_count

    with stage_lock(stage_id):
        standings = get_seeding_standings(session, stage, source_stage_id)
        if len(standings) < size:
            raise InsufficientTeamsError(
                f"Not enough ranked teams ({len(standings)}) for a {size}-team bracket",
                required=size,
                available=len(standings),
            )
        nodes = plan_bracket([s.team_id for s in standings[:size]], round_count)

        base_time = start_time or datetime.now(timezone.utc)
        first_number = next_match_number(session, stage_id)
        first_slot = next_bracket_slot(session, stage_id)
        created: List[Match] = []
        try:
            for node in nodes:
                playing_field = fields[node.index % len(fields)]
                match = Match(
                    stage_id=stage_id,
                    match_number=first_number + node.index,
                    round_number=node.round_number,
                    bracket_slot=first_slot + node.index,
                    field_id=playing_field.id,
                    scheduled_time=base_time + timedelta(minutes=(node.index + 1) * PLAYOFF_SLOT_MINUTES),
                    status=MATCH_PENDING,
                )
                session.add(match)
                session.flush()
                add_alliance(session, match, SIDE_RED, node.red)
                add_alliance(session, match, SIDE_BLUE, node.blue)
                created.append(match)

            for node, match in zip(nodes, created):
                if node.feeds_into is not None:
                    match.feeds_into_match_id = created[node.feeds_into].id
                if node.loser_feeds_into is not None:
                    match.loser_feeds_into_match_id = created[node.loser_feeds_into].id
                session.add(match)
            session.commit()
        except Exception:
            session.rollback()
            raise

    for match in created:
        session.refresh(match)

    logger.info("Built %d-team bracket for stage %d: %d matches", size, stage_id, len(created))
    notifications.publish(notifications.BRACKET_BUILT, stage_id, [m.id for m in created], rounds=round_count)
    return created


# ============================================================================
# Advance
# ============================================================================


def _other_side(side: str) -> str:
    return SIDE_BLUE if side == SIDE_RED else SIDE_RED


def _load_forward(session: Session, source: Match, forward_id: int) -> MatchRoster:
    forward = session.get(Match, forward_id)
    if not forward or forward.stage_id != source.stage_id:
        raise BracketStateError(
            f"Match {source.id} feeds into missing match {forward_id}",
            match_id=source.id,
            stage_id=source.stage_id,
        )
    if forward.status != MATCH_PENDING:
        raise BracketStateError(
            f"Match {forward.id} has already started; cannot change its alliances",
            match_id=forward.id,
            stage_id=source.stage_id,
        )
    return load_match_roster(session, forward)


def _replace_roster(session: Session, target: MatchRoster, side: str, seats: List[TeamAlliance]) -> None:
    alliance = target.alliances.get(side)
    if alliance is None:
        alliance = Alliance(match_id=target.match.id, side=side)
        session.add(alliance)
        session.flush()
    for old in target.seats.get(side, []):
        session.delete(old)
    session.flush()
    for seat in seats:
        session.add(
            TeamAlliance(
                alliance_id=alliance.id,
                team_id=seat.team_id,
                station_position=seat.station_position,
            )
        )


def advance_bracket(session: Session, match_id: int) -> List[Match]:
    """Move the winner of a completed match into the match it feeds.

    Returns [source, forward]. Everything is validated before the first write.
    """
    match = session.get(Match, match_id)
    if not match:
        raise MatchNotFoundError(match_id)
    stage_id = match.stage_id

    with stage_lock(stage_id):
        session.refresh(match)
        if match.status != MATCH_COMPLETED:
            raise BracketStateError(
                f"Match {match_id} is not completed (status: {match.status})", match_id=match_id, stage_id=stage_id
            )
        if match.winning_side not in (SIDE_RED, SIDE_BLUE):
            raise BracketStateError(f"Match {match_id} has no winning side", match_id=match_id, stage_id=stage_id)
        if match.feeds_into_match_id is None:
            raise BracketStateError(
                f"Match {match_id} does not feed into another match", match_id=match_id, stage_id=stage_id
            )
        if match.advanced_at is not None:
            raise BracketStateError(f"Match {match_id} has already been advanced", match_id=match_id, stage_id=stage_id)

        round_matches = session.exec(
            select(Match)
            .where(Match.stage_id == stage_id, Match.round_number == match.round_number)
            .order_by(Match.bracket_slot, Match.match_number)
        ).all()
        # Position counts every match of this round in the stage, earlier brackets included
        position = [m.id for m in round_matches].index(match.id)
        target_side = SIDE_RED if position % 2 == 0 else SIDE_BLUE

        source = load_match_roster(session, match)
        winners = source.seats.get(match.winning_side, [])
        losers = source.seats.get(_other_side(match.winning_side), [])
        forward = _load_forward(session, match, match.feeds_into_match_id)
        loser_forward = None
        if match.loser_feeds_into_match_id is not None:
            loser_forward = _load_forward(session, match, match.loser_feeds_into_match_id)

        try:
            _replace_roster(session, forward, target_side, winners)
            if loser_forward is not None:
                _replace_roster(session, loser_forward, target_side, losers)
            match.advanced_at = datetime.now(timezone.utc)
            session.add(match)
            session.commit()
        except Exception:
            session.rollback()
            raise

    session.refresh(match)
    session.refresh(forward.match)
    logger.info(
        "Advanced %s of match %d into match %d (%s)",
        match.winning_side,
        match.match_number,
        forward.match.match_number,
        target_side,
    )
    notifications.publish(
        notifications.BRACKET_ADVANCED,
        stage_id,
        [match.id, forward.match.id],
        side=target_side,
    )
    return [match, forward.match]


# ============================================================================
# Finalize
# ============================================================================


def finalize_bracket_ranks(session: Session, stage_id: int) -> List[Match]:
    """Write placement ranks for every team in a completed bracket."""
    stage = get_stage_or_raise(session, stage_id)

    with stage_lock(stage_id):
        matches = list(session.exec(select(Match).where(Match.stage_id == stage_id)).all())
        if not matches:
            raise BracketStateError(f"Stage {stage_id} has no matches to finalize", stage_id=stage_id)
        incomplete = [m for m in matches if m.status != MATCH_COMPLETED]
        if incomplete:
            raise BracketStateError(
                f"Cannot finalize stage {stage_id}: {len(incomplete)} matches not completed",
                match_id=incomplete[0].id,
                stage_id=stage_id,
            )
        undecided = [m for m in matches if m.winning_side not in (SIDE_RED, SIDE_BLUE)]
        if undecided:
            raise BracketStateError(
                f"Cannot finalize stage {stage_id}: match {undecided[0].match_number} has no winner",
                match_id=undecided[0].id,
                stage_id=stage_id,
            )

        final_round = max(m.round_number for m in matches)
        ranks: Dict[int, int] = {}
        for match in sorted(matches, key=lambda m: (-m.round_number, m.match_number)):
            roster = load_match_roster(session, match)
            depth = final_round - match.round_number
            if depth == 0:
                for team_id in roster.team_ids(match.winning_side):
                    ranks[team_id] = 1
                loser_rank = 2
            else:
                loser_rank = 2 ** depth + 1
            for team_id in roster.team_ids(_other_side(match.winning_side)):
                ranks.setdefault(team_id, loser_rank)

        existing = {s.team_id: s for s in session.exec(select(TeamStats).where(TeamStats.stage_id == stage_id)).all()}
        try:
            for team_id, rank in ranks.items():
                stats = existing.get(team_id)
                if stats is None:
                    stats = TeamStats(team_id=team_id, tournament_id=stage.tournament_id, stage_id=stage_id)
                stats.rank = rank
                stats.updated_at = datetime.now(timezone.utc)
                session.add(stats)
            stage.status = STAGE_COMPLETED
            session.add(stage)
            session.commit()
        except Exception:
            session.rollback()
            raise

    ordered = sorted(matches, key=lambda m: (-m.round_number, m.match_number))
    for match in ordered:
        session.refresh(match)
    logger.info("Finalized bracket for stage %d: %d teams placed", stage_id, len(ranks))
    notifications.publish(notifications.BRACKET_FINALIZED, stage_id, [m.id for m in ordered], placements=len(ranks))
    return ordered
