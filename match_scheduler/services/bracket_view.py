"""Display-neutral bracket structure for a stage: normalized matches plus grouping."""

from typing import Any, Dict, List, Tuple

from sqlmodel import Session

from match_scheduler.models.alliance import SIDES
from match_scheduler.models.stage import StageType
from match_scheduler.services.rosters import MatchRoster, load_stage_rosters
from match_scheduler.services.standings_service import get_stage_or_raise

UNASSIGNED_BUCKET = "unassigned"


def elimination_round_label(round_number: int, final_round: int) -> str:
    if not round_number:
        return "Seeding"
    remaining = final_round - round_number
    if remaining <= 0:
        return "Finals"
    if remaining == 1:
        return "Semifinals"
    if remaining == 2:
        return "Quarterfinals"
    return f"Round of {2 ** (remaining + 1)}"


def _parse_record(record: str) -> Tuple[int, int]:
    """(wins, losses) from a 'W-L' label; unparseable labels sort last."""
    try:
        wins, losses = record.split("-", 1)
        return int(wins), int(losses)
    except ValueError:
        return -1, 2**31


def _normalize(roster: MatchRoster) -> Dict[str, Any]:
    match = roster.match
    return {
        "id": match.id,
        "match_number": match.match_number,
        "round_number": match.round_number,
        "bracket_slot": match.bracket_slot,
        "record_bucket": match.record_bucket,
        "status": match.status,
        "scheduled_time": match.scheduled_time.isoformat() if match.scheduled_time else None,
        "field_id": match.field_id,
        "winning_side": match.winning_side,
        "feeds_into_match_id": match.feeds_into_match_id,
        "loser_feeds_into_match_id": match.loser_feeds_into_match_id,
        "alliances": [
            {
                "side": side,
                "score": roster.score(side),
                "teams": [
                    {
                        "team_id": seat.team_id,
                        "station_position": seat.station_position,
                        "is_surrogate": seat.is_surrogate,
                    }
                    for seat in roster.seats.get(side, [])
                ],
            }
            for side in SIDES
        ],
    }


def _rounds(matches: List[Dict[str, Any]]) -> List[Tuple[int, List[int]]]:
    grouped: Dict[int, List[int]] = {}
    for m in matches:
        grouped.setdefault(m["round_number"] or 0, []).append(m["id"])
    return sorted(grouped.items())


def build_bracket_structure(stage_type: str, matches: List[Dict[str, Any]]) -> Dict[str, Any]:
    rounds = _rounds(matches)

    if stage_type == StageType.playoff:
        final_round = max((r for r, _ in rounds if r), default=0)
        return {
            "type": "elimination",
            "rounds": [
                {"round_number": r, "label": elimination_round_label(r, final_round), "matches": ids}
                for r, ids in rounds
            ],
        }

    plain_rounds = [{"round_number": r, "matches": ids} for r, ids in rounds]

    if stage_type == StageType.swiss:
        buckets: Dict[str, List[int]] = {}
        for m in matches:
            buckets.setdefault(m["record_bucket"] or UNASSIGNED_BUCKET, []).append(m["id"])
        ordered = sorted(buckets.items(), key=lambda kv: (-_parse_record(kv[0])[0], _parse_record(kv[0])[1]))
        return {
            "type": "swiss",
            "buckets": [{"record": record, "matches": ids} for record, ids in ordered],
            "rounds": plain_rounds,
        }

    return {"type": "standard", "rounds": plain_rounds}


def get_stage_bracket(session: Session, stage_id: int) -> Dict[str, Any]:
    stage = get_stage_or_raise(session, stage_id)
    matches = [_normalize(r) for r in load_stage_rosters(session, stage_id)]
    return {
        "stage_id": stage.id,
        "tournament_id": stage.tournament_id,
        "stage_type": StageType(stage.stage_type).value,
        "matches": matches,
        "structure": build_bracket_structure(stage.stage_type, matches),
    }
