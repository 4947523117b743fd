"""
Schedule configuration for the annealing optimizer.

The config is the only structured payload that crosses the caller/optimizer
boundary, so it round-trips exactly through model_dump()/model_validate() and
rejects unknown keys.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from match_scheduler.exceptions import ScheduleConfigurationError

QUALITY_ITERATIONS: Dict[str, int] = {
    "fair": 100_000,
    "good": 750_000,
    "best": 5_000_000,
}

# Caller-facing tier names
QUALITY_TIERS: Dict[str, str] = {
    "low": "fair",
    "medium": "good",
    "high": "best",
}

QualityLevel = Literal["fair", "good", "best", "custom"]


class AnnealingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_temperature: float = Field(default=100.0, gt=0)
    cooling_rate: float = Field(default=0.95, gt=0, lt=1)
    min_temperature: float = Field(default=0.01, gt=0)
    iterations_per_temperature: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def validate_temperatures(self):
        if self.min_temperature >= self.initial_temperature:
            raise ValueError("min_temperature must be lower than initial_temperature")
        return self


class PenaltyWeights(BaseModel):
    model_config = ConfigDict(extra="forbid")

    partner_repeat: float = Field(default=3.0, ge=0)
    opponent_repeat: float = Field(default=2.0, ge=0)
    general_repeat: float = Field(default=1.0, ge=0)
    separation_violation: float = Field(default=10.0, ge=0)
    side_imbalance: float = Field(default=2.0, ge=0)
    station_imbalance: float = Field(default=0.5, ge=0)


class ScheduleConstraints(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_match_separation: int = Field(default=1, ge=0)
    enable_surrogates: bool = True
    surrogate_round: int = Field(default=3, ge=1)


class StationBalancing(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    strategy: Literal["position", "mirrored"] = "position"


class AllianceBalancing(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True


class ScheduleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Range (1-3) is enforced by the generator so it surfaces as a configuration error
    teams_per_alliance: int = 3
    rounds: int = Field(default=6, ge=1)
    quality_level: QualityLevel = "good"
    custom_iterations: Optional[int] = Field(default=None, ge=1)

    annealing: AnnealingSettings = Field(default_factory=AnnealingSettings)
    penalties: PenaltyWeights = Field(default_factory=PenaltyWeights)
    constraints: ScheduleConstraints = Field(default_factory=ScheduleConstraints)
    station_balancing: StationBalancing = Field(default_factory=StationBalancing)
    alliance_balancing: AllianceBalancing = Field(default_factory=AllianceBalancing)

    @field_validator("quality_level", mode="before")
    @classmethod
    def normalize_quality_level(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return QUALITY_TIERS.get(v, v)
        return v

    @model_validator(mode="after")
    def validate_custom_iterations(self):
        if self.quality_level == "custom" and self.custom_iterations is None:
            raise ValueError("custom_iterations is required when quality_level is 'custom'")
        return self

    def iteration_budget(self, quality_tier: Optional[str] = None) -> int:
        """Iterations to run: an explicit tier wins over the configured level."""
        if quality_tier is not None:
            level = QUALITY_TIERS.get(quality_tier.lower(), quality_tier.lower())
            if level not in QUALITY_ITERATIONS:
                raise ScheduleConfigurationError(f"Unknown quality tier: {quality_tier}")
            return QUALITY_ITERATIONS[level]
        if self.quality_level == "custom":
            return int(self.custom_iterations)
        return QUALITY_ITERATIONS[self.quality_level]


PRESET_CONFIGS: Dict[str, Dict[str, Any]] = {
    "frc_regional": {
        "teams_per_alliance": 3,
        "rounds": 6,
        "quality_level": "good",
    },
    "frc_small": {
        "teams_per_alliance": 3,
        "rounds": 8,
        "quality_level": "best",
    },
    "two_vs_two": {
        "teams_per_alliance": 2,
        "rounds": 6,
        "quality_level": "good",
    },
    "one_vs_one": {
        "teams_per_alliance": 1,
        "rounds": 6,
        "quality_level": "good",
        # No partners in 1v1, weight opponent repeats instead
        "penalties": {"partner_repeat": 0.0, "opponent_repeat": 3.0, "general_repeat": 1.5},
    },
    "fast": {
        "quality_level": "fair",
        "annealing": {
            "initial_temperature": 50.0,
            "cooling_rate": 0.9,
            "min_temperature": 0.1,
            "iterations_per_temperature": 50,
        },
    },
}


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def merge_config(
    base: Optional[ScheduleConfig] = None,
    *overrides: Union[ScheduleConfig, Mapping[str, Any], None],
) -> ScheduleConfig:
    """Deep-merge partial overrides onto base (defaults when None) and validate."""
    data = (base or ScheduleConfig()).model_dump()
    for override in overrides:
        if override is None:
            continue
        if isinstance(override, ScheduleConfig):
            override = override.model_dump(exclude_unset=True)
        data = _deep_merge(data, override)
    try:
        return ScheduleConfig.model_validate(data)
    except ValidationError as exc:
        raise ScheduleConfigurationError(f"Invalid schedule configuration: {exc}") from exc


def load_preset(name: str, **overrides: Any) -> ScheduleConfig:
    preset = PRESET_CONFIGS.get(name)
    if preset is None:
        raise ScheduleConfigurationError(
            f"Unknown preset '{name}'; expected one of {sorted(PRESET_CONFIGS)}"
        )
    return merge_config(None, preset, overrides or None)
