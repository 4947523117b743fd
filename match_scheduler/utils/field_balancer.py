"""
Field Balancer — spread generated matches across playing fields.

Each assignment picks uniformly at random among the least-used fields and bumps
that field's counter. Over many assignments every field carries about the same
load; there is no affinity between a round and a field.
"""
import random
from typing import Dict, List, Optional, Sequence

from match_scheduler.exceptions import ScheduleConfigurationError
from match_scheduler.models.playing_field import PlayingField


class FieldBalancer:
    def __init__(self, fields: Sequence[PlayingField], rng: Optional[random.Random] = None):
        if not fields:
            raise ScheduleConfigurationError("No playing fields available for this tournament")
        self._rng = rng or random.Random()
        self._fields: List[PlayingField] = list(fields)
        self._rng.shuffle(self._fields)
        self._usage: Dict[int, int] = {id(f): 0 for f in self._fields}

    def assign(self) -> PlayingField:
        """Pick one of the least-used fields and record the use."""
        least = min(self._usage.values())
        candidates = [f for f in self._fields if self._usage[id(f)] == least]
        chosen = self._rng.choice(candidates)
        self._usage[id(chosen)] += 1
        return chosen

    def usage(self) -> Dict[int, int]:
        """Usage count keyed by field number."""
        return {f.number: self._usage[id(f)] for f in self._fields}
