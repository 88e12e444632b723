"""
Knockout phase scheduling.

Playoff matches are placed after the group phase in dependency waves:
a match is only placed once every match it depends on already has a slot.
"""
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from planner.models import FinalsConfig, Match
from planner.playoffs import generate_playoff_matches
from planner.sources import parse_source

logger = logging.getLogger(__name__)

SEQUENTIAL_ONLY = 'sequentialOnly'
PARALLEL_ALLOWED = 'parallelAllowed'


class CircularDependencyError(ValueError):
    """Raised when playoff definitions depend on each other in a cycle."""


class PlayoffDefinition:
    def __init__(self, id, label, source_a, source_b, final_type=None,
                 parallel_mode=PARALLEL_ALLOWED, depends_on=None):
        self.id = id
        self.label = label
        self.source_a = source_a
        self.source_b = source_b
        self.final_type = final_type
        self.parallel_mode = parallel_mode
        self.depends_on = list(depends_on) if depends_on else []

    def __repr__(self):
        return (f"PlayoffDefinition(id={self.id}, mode={self.parallel_mode}, "
                f"depends_on={self.depends_on})")


def _final_type(match_id):
    if match_id == 'final':
        return 'final'
    if match_id == 'third-place':
        return 'thirdPlace'
    if match_id.startswith('place56'):
        return 'fifthSixth'
    if match_id.startswith('place78'):
        return 'seventhEighth'
    return None


def _parallel_mode(match_id, finals_config):
    if match_id == 'final':
        return SEQUENTIAL_ONLY
    if match_id.startswith('semi') and finals_config.parallel_semifinals is False:
        return SEQUENTIAL_ONLY
    if match_id.startswith('qf') and finals_config.parallel_quarterfinals is False:
        return SEQUENTIAL_ONLY
    if match_id.startswith('r16') and finals_config.parallel_round_of_16 is False:
        return SEQUENTIAL_ONLY
    return PARALLEL_ALLOWED


def generate_playoff_definitions(number_of_groups: int, finals_config: FinalsConfig,
                                 group_sizes: Optional[Dict[str, int]] = None) -> List[PlayoffDefinition]:
    """Preset matches with their final type and parallelization policy."""
    return [
        PlayoffDefinition(
            id=match.id,
            label=match.label,
            source_a=parse_source(match.home),
            source_b=parse_source(match.away),
            final_type=_final_type(match.id),
            parallel_mode=_parallel_mode(match.id, finals_config),
            depends_on=match.depends_on,
        )
        for match in generate_playoff_matches(number_of_groups, finals_config, group_sizes)
    ]


def topological_sort(definitions: List[PlayoffDefinition]) -> List[PlayoffDefinition]:
    """Dependencies first; ids that are not among the definitions are ignored."""
    by_id = {definition.id: definition for definition in definitions}
    ordered = []
    visited = set()
    in_progress = set()

    def visit(definition):
        if definition.id in in_progress:
            raise CircularDependencyError("Circular dependency detected in playoff matches")
        if definition.id in visited:
            return
        in_progress.add(definition.id)
        for dependency_id in definition.depends_on:
            if dependency_id in by_id:
                visit(by_id[dependency_id])
        in_progress.discard(definition.id)
        visited.add(definition.id)
        ordered.append(definition)

    for definition in definitions:
        visit(definition)
    return ordered


def generate_playoff_schedule(definitions: List[PlayoffDefinition], number_of_fields: int,
                              slot_duration: int, break_duration: int = 0, start_slot: int = 0,
                              start_time=None) -> List[Match]:
    """
    Place playoff definitions into slots starting at ``start_slot``.

    Sequential matches, and every match when there is a single field, get
    a slot of their own on field 1. The parallel matches of the wave then
    share slots across the fields. Match ids equal definition ids, so bracket sources
    like ``semi1-winner`` point at scheduled matches. ``start_time`` is the
    kickoff of ``start_slot``.
    """
    if number_of_fields < 1:
        raise ValueError("number_of_fields must be at least 1")
    if not definitions:
        return []

    ordered = topological_sort(definitions)
    scheduled_ids = set()
    matches = []
    slot = start_slot

    def place(definition, slot, field):
        scheduled_time = None
        if start_time is not None:
            scheduled_time = start_time + timedelta(minutes=(slot - start_slot) * (slot_duration + break_duration))
        matches.append(Match(
            id=definition.id,
            round=slot + 1,
            field=field,
            slot=slot,
            source_a=definition.source_a,
            source_b=definition.source_b,
            is_final=True,
            final_type=definition.final_type,
            label=definition.label,
            depends_on=definition.depends_on,
            scheduled_time=scheduled_time,
        ))

    while len(scheduled_ids) < len(ordered):
        wave = [
            d for d in ordered
            if d.id not in scheduled_ids and all(dep in scheduled_ids for dep in d.depends_on)
        ]
        if not wave:
            missing = [d.id for d in ordered if d.id not in scheduled_ids]
            logger.warning(f"Playoff matches with unknown dependencies left unscheduled: {missing}")
            break

        sequential = [d for d in wave if d.parallel_mode == SEQUENTIAL_ONLY or number_of_fields == 1]
        parallel = [d for d in wave if d not in sequential]

        for definition in sequential:
            place(definition, slot, 1)
            scheduled_ids.add(definition.id)
            slot += 1

        field = 1
        for definition in parallel:
            place(definition, slot, field)
            scheduled_ids.add(definition.id)
            field += 1
            if field > number_of_fields:
                field = 1
                slot += 1
        if field > 1:
            slot += 1

    logger.info(f"Scheduled {len(matches)} playoff matches from slot {start_slot} to {slot - 1}")
    return matches
