"""
Stage-type dispatch: each StageType maps to exactly one match generator.

    qualification → OptimizedScheduleStrategy  (annealing, whole schedule)
    swiss         → AdaptivePairingStrategy    (one round per call)
    playoff       → BracketStrategy            (whole bracket)
"""
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from sqlmodel import Session

from match_scheduler.exceptions import ScheduleConfigurationError, StageStateError
from match_scheduler.models.match import Match
from match_scheduler.models.stage import STAGE_COMPLETED, Stage, StageType
from match_scheduler.services.adaptive_pairing import generate_next_adaptive_round
from match_scheduler.services.bracket_service import build_bracket
from match_scheduler.services.optimized_schedule import generate_optimized_schedule
from match_scheduler.services.schedule_config import ScheduleConfig
from match_scheduler.services.standings_service import get_stage_or_raise


@dataclass
class OptimizedScheduleOptions:
    round_count: int
    teams_per_alliance: Optional[int] = None  # defaults to the stage's
    config: Optional[ScheduleConfig] = None
    max_iterations: Optional[int] = None
    quality_tier: Optional[str] = None
    rng: Optional[random.Random] = None
    should_cancel: Optional[Callable[[], bool]] = None
    time_limit_seconds: Optional[float] = None
    start_time: Optional[datetime] = None


@dataclass
class AdaptiveRoundOptions:
    current_round_number: int
    teams_per_alliance: Optional[int] = None
    rng: Optional[random.Random] = None
    start_time: Optional[datetime] = None


@dataclass
class BracketOptions:
    round_count: int
    source_stage_id: Optional[int] = None  # defaults to the latest ranked stage
    start_time: Optional[datetime] = None


StrategyOptions = Union[OptimizedScheduleOptions, AdaptiveRoundOptions, BracketOptions]


class SchedulingStrategy:
    options_type: type = object

    def check_options(self, options: StrategyOptions) -> None:
        if not isinstance(options, self.options_type):
            raise ScheduleConfigurationError(
                f"{type(self).__name__} expects {self.options_type.__name__}, got {type(options).__name__}"
            )

    def generate_matches(self, session: Session, stage: Stage, options: StrategyOptions) -> List[Match]:
        raise NotImplementedError


class OptimizedScheduleStrategy(SchedulingStrategy):
    options_type = OptimizedScheduleOptions

    def generate_matches(self, session: Session, stage: Stage, options: OptimizedScheduleOptions) -> List[Match]:
        self.check_options(options)
        return generate_optimized_schedule(
            session,
            stage.id,
            options.round_count,
            options.teams_per_alliance or stage.teams_per_alliance,
            options.config,
            max_iterations=options.max_iterations,
            quality_tier=options.quality_tier,
            rng=options.rng,
            should_cancel=options.should_cancel,
            time_limit_seconds=options.time_limit_seconds,
            start_time=options.start_time,
        )


class AdaptivePairingStrategy(SchedulingStrategy):
    options_type = AdaptiveRoundOptions

    def generate_matches(self, session: Session, stage: Stage, options: AdaptiveRoundOptions) -> List[Match]:
        self.check_options(options)
        return generate_next_adaptive_round(
            session,
            stage.id,
            options.current_round_number,
            options.teams_per_alliance,
            rng=options.rng,
            start_time=options.start_time,
        )


class BracketStrategy(SchedulingStrategy):
    options_type = BracketOptions

    def generate_matches(self, session: Session, stage: Stage, options: BracketOptions) -> List[Match]:
        self.check_options(options)
        return build_bracket(
            session,
            stage.id,
            options.round_count,
            source_stage_id=options.source_stage_id,
            start_time=options.start_time,
        )


STRATEGIES: Dict[StageType, SchedulingStrategy] = {
    StageType.qualification: OptimizedScheduleStrategy(),
    StageType.swiss: AdaptivePairingStrategy(),
    StageType.playoff: BracketStrategy(),
}


def strategy_for_stage(stage: Stage) -> SchedulingStrategy:
    try:
        return STRATEGIES[StageType(stage.stage_type)]
    except ValueError as exc:
        raise ScheduleConfigurationError(f"Unknown stage type: {stage.stage_type}") from exc


def generate_matches(session: Session, stage_id: int, options: StrategyOptions) -> List[Match]:
    """Generate matches for a stage with the strategy its type selects."""
    stage = get_stage_or_raise(session, stage_id)
    if stage.status == STAGE_COMPLETED:
        raise StageStateError(f"Stage {stage_id} is completed; no new matches allowed", stage_id=stage_id)
    return strategy_for_stage(stage).generate_matches(session, stage, options)
