"""
Fill knockout matches with real teams.

Playoff matches are scheduled with participant sources only. Once the
group phase is complete the group-derived sources are looked up in the
standings; after each knockout result the bracket sources
(``semi1-winner``...) are looked up in the finished matches.

Every function here returns a new Tournament and leaves its input alone.
Situations like "group phase not finished" or "nothing left to resolve"
are reported through ResolutionResult, never raised.
"""
import logging
from typing import Dict, List, Optional

from planner.sources import BestSecond, BracketResult, GroupPlacement, is_group_derived
from planner.standings import calculate_group_standings, match_winner

logger = logging.getLogger(__name__)

GROUP_PHASE_INCOMPLETE = "Group phase is not completed yet"
ALREADY_RESOLVED = "Playoff pairings are already resolved"


class ResolutionResult:
    def __init__(self, was_resolved, updated_matches, message, updated_match_ids=None, tournament=None):
        self.was_resolved = was_resolved
        self.updated_matches = updated_matches
        self.message = message
        self.updated_match_ids = list(updated_match_ids) if updated_match_ids else []
        self.tournament = tournament

    def __repr__(self):
        return (f"ResolutionResult(was_resolved={self.was_resolved}, "
                f"updated_matches={self.updated_matches}, message={self.message!r})")

    def to_dict(self):
        return {
            'wasResolved': self.was_resolved,
            'updatedMatches': self.updated_matches,
            'message': self.message,
            'updatedMatchIds': list(self.updated_match_ids),
        }


def _nothing_done(tournament, message):
    return ResolutionResult(False, 0, message, [], tournament)


def are_all_group_matches_completed(tournament) -> bool:
    """True if there is at least one group match and every one has both scores."""
    group_matches = [m for m in tournament.matches if not m.is_final and m.group is not None]
    if not group_matches:
        return False
    return all(m.is_played for m in group_matches)


def needs_playoff_resolution(tournament) -> bool:
    return any(m.is_final and not m.is_resolved for m in tournament.matches)


def _standings_for_group(group_standings, group):
    for key in (group, f"Gruppe {group}", group.lower()):
        if key in group_standings:
            return group_standings[key]
    return None


def resolve_placeholder(source, group_standings: Dict[str, List], matches=None) -> Optional[str]:
    """
    Team id for a participant source, or None if it cannot be known yet.

    ``group_standings`` maps group keys to sorted standings. ``matches`` is
    only needed for bracket sources.
    """
    if isinstance(source, GroupPlacement):
        standings = _standings_for_group(group_standings, source.group)
        if not standings or len(standings) < source.rank:
            return None
        return standings[source.rank - 1].team.id

    if isinstance(source, BestSecond):
        # First runner-up found; runners-up of different groups are not compared.
        for standings in group_standings.values():
            if len(standings) >= 2:
                return standings[1].team.id
        return None

    if isinstance(source, BracketResult):
        return resolve_bracket_placeholder(source, matches or [])

    return None


def resolve_bracket_placeholder(source: BracketResult, matches) -> Optional[str]:
    """
    Winner or loser of the referenced knockout match.

    None while that match is unresolved or unplayed, and for a draw unless
    the match records a penalty or overtime decision.
    """
    referenced = next((m for m in matches if m.id == source.match_id and m.is_final), None)
    if referenced is None:
        return None
    result = match_winner(referenced)
    if result is None:
        return None
    winner, loser = result
    return winner if source.outcome == 'winner' else loser


def _resolve_open_sides(tournament, group_standings):
    """Resolve every unresolved side of every knockout match once."""
    by_id = {m.id: m for m in tournament.matches}
    updated_ids = []
    for match in tournament.matches:
        if not match.is_final or match.is_resolved:
            continue
        changes = {}
        for side in ('a', 'b'):
            if getattr(match, f'team_{side}') is not None:
                continue
            team_id = resolve_placeholder(getattr(match, f'source_{side}'), group_standings,
                                          list(by_id.values()))
            if team_id is not None:
                changes[f'team_{side}'] = team_id
        if changes:
            by_id[match.id] = match.replace(**changes)
            updated_ids.append(match.id)

    matches = [by_id[m.id] for m in tournament.matches]
    return tournament.replace(matches=matches), updated_ids


def resolve_playoff_pairings(tournament) -> ResolutionResult:
    """Resolve knockout participants once the group phase is complete."""
    if not are_all_group_matches_completed(tournament):
        return _nothing_done(tournament, GROUP_PHASE_INCOMPLETE)
    if not needs_playoff_resolution(tournament):
        return _nothing_done(tournament, ALREADY_RESOLVED)

    updated, updated_ids = _resolve_open_sides(tournament, calculate_group_standings(tournament))
    if not updated_ids:
        return _nothing_done(tournament, "No playoff matches could be resolved")

    logger.info(f"Resolved playoff matches: {', '.join(updated_ids)}")
    return ResolutionResult(True, len(updated_ids), f"{len(updated_ids)} playoff matches resolved",
                            updated_ids, updated)


def _expected_teams(match, group_standings):
    if not (is_group_derived(match.source_a) and is_group_derived(match.source_b)):
        return None
    team_a = resolve_placeholder(match.source_a, group_standings)
    team_b = resolve_placeholder(match.source_b, group_standings)
    if team_a is None or team_b is None:
        return None
    return team_a, team_b


def needs_playoff_re_resolution(tournament) -> bool:
    """
    True when a resolved knockout match fed only by group placements no
    longer matches the current standings, e.g. after a corrected score.
    """
    if not are_all_group_matches_completed(tournament):
        return False

    group_standings = calculate_group_standings(tournament)
    for match in tournament.matches:
        if not match.is_final or (match.team_a is None and match.team_b is None):
            continue
        expected = _expected_teams(match, group_standings)
        if expected is not None and (match.team_a, match.team_b) != expected:
            return True
    return False


def _clear_scores(match, **changes):
    return match.replace(score_a=None, score_b=None, decided_by=None,
                         penalty_score_a=None, penalty_score_b=None,
                         overtime_score_a=None, overtime_score_b=None, **changes)


def _reset_dependents(matches, changed_ids):
    """Unresolve knockout sides fed by a changed match, transitively."""
    by_id = {m.id: m for m in matches}
    reset_ids = []
    pending = list(changed_ids)
    while pending:
        changed_id = pending.pop(0)
        for match in list(by_id.values()):
            if not match.is_final:
                continue
            changes = {}
            for side in ('a', 'b'):
                source = getattr(match, f'source_{side}')
                if (isinstance(source, BracketResult) and source.match_id == changed_id
                        and getattr(match, f'team_{side}') is not None):
                    changes[f'team_{side}'] = None
            if not changes:
                continue
            by_id[match.id] = _clear_scores(match, **changes)
            if match.id not in reset_ids:
                reset_ids.append(match.id)
                pending.append(match.id)
    return [by_id[m.id] for m in matches], reset_ids


def re_resolve_playoff_pairings(tournament) -> ResolutionResult:
    """
    Recompute every knockout match fed only by group placements.

    A match whose pairing changes loses its scores. Knockout matches fed
    by a changed match fall back to their bracket sources.
    """
    group_standings = calculate_group_standings(tournament)
    matches = []
    changed_ids = []
    for match in tournament.matches:
        expected = _expected_teams(match, group_standings) if match.is_final else None
        if expected is not None and (match.team_a, match.team_b) != expected:
            match = _clear_scores(match, team_a=expected[0], team_b=expected[1])
            changed_ids.append(match.id)
        matches.append(match)

    if not changed_ids:
        return _nothing_done(tournament, "No playoff matches needed re-resolution")

    matches, reset_ids = _reset_dependents(matches, changed_ids)
    if reset_ids:
        logger.info(f"Reset knockout matches after re-resolution: {', '.join(reset_ids)}")
    logger.info(f"Re-resolved playoff matches: {', '.join(changed_ids)}")
    return ResolutionResult(True, len(changed_ids), f"{len(changed_ids)} playoff matches re-resolved",
                            changed_ids + [i for i in reset_ids if i not in changed_ids],
                            tournament.replace(matches=matches))


def force_re_resolve_playoffs(tournament) -> ResolutionResult:
    """Manual re-resolution; clears the scores of every match whose pairing changes."""
    if not are_all_group_matches_completed(tournament):
        return _nothing_done(tournament, GROUP_PHASE_INCOMPLETE)
    return re_resolve_playoff_pairings(tournament)


def resolve_bracket_after_playoff_match(tournament) -> Optional[ResolutionResult]:
    """Cascade a knockout result into the matches that wait for it. None if nothing is open."""
    if not needs_playoff_resolution(tournament):
        return None

    updated, updated_ids = _resolve_open_sides(tournament, calculate_group_standings(tournament))
    if not updated_ids:
        return _nothing_done(tournament, "No bracket matches could be resolved")

    logger.info(f"Resolved bracket matches: {', '.join(updated_ids)}")
    return ResolutionResult(True, len(updated_ids), f"{len(updated_ids)} bracket matches resolved",
                            updated_ids, updated)


def auto_resolve_playoffs_if_ready(tournament) -> Optional[ResolutionResult]:
    """
    Resolve playoffs right after the last group result is entered.

    Pairings are resolved once. Later score corrections never re-resolve
    them automatically; that is what force_re_resolve_playoffs is for.
    """
    if not are_all_group_matches_completed(tournament):
        return None
    if not needs_playoff_resolution(tournament):
        return None
    return resolve_playoff_pairings(tournament)


def apply_match_result(tournament, match_id, score_a, score_b, decided_by=None,
                       penalty_score_a=None, penalty_score_b=None,
                       overtime_score_a=None, overtime_score_b=None):
    """
    Enter a result and run the matching resolution step.

    Returns ``(tournament, resolution)``; ``resolution`` is None when no
    resolution step ran.
    """
    match = tournament.find_match(match_id)
    if match is None:
        raise KeyError(match_id)
    if not match.is_resolved:
        raise ValueError(f"Match {match_id} does not have both teams yet")
    if score_a is None or score_b is None or score_a < 0 or score_b < 0:
        raise ValueError("Scores must be non-negative numbers")

    scored = match.replace(score_a=score_a, score_b=score_b, decided_by=decided_by,
                           penalty_score_a=penalty_score_a, penalty_score_b=penalty_score_b,
                           overtime_score_a=overtime_score_a, overtime_score_b=overtime_score_b)
    updated = tournament.replace(matches=[scored if m.id == match_id else m for m in tournament.matches])

    if match.is_final:
        if match_winner(match) != match_winner(scored):
            updated = _unresolve_fed_by(updated, match_id)
        resolution = resolve_bracket_after_playoff_match(updated)
    else:
        resolution = auto_resolve_playoffs_if_ready(updated)
    if resolution is not None and resolution.was_resolved:
        updated = resolution.tournament
    return updated, resolution


def _unresolve_fed_by(tournament, match_id):
    """Send knockout sides fed by a changed result back to their sources."""
    matches, reset_ids = _reset_dependents(tournament.matches, [match_id])
    if not reset_ids:
        return tournament
    logger.info(f"Result of {match_id} changed, reset knockout matches: {', '.join(reset_ids)}")
    return tournament.replace(matches=matches)


def clear_match_result(tournament, match_id):
    """Remove a result. Knockout sides resolved from it are unresolved again."""
    match = tournament.find_match(match_id)
    if match is None:
        raise KeyError(match_id)
    cleared = _clear_scores(match)
    updated = tournament.replace(matches=[cleared if m.id == match_id else m for m in tournament.matches])
    if match.is_final and match_winner(match) is not None:
        updated = _unresolve_fed_by(updated, match_id)
    return updated
