"""
Print a complete tournament schedule from a tournament YAML file.

The file holds a ``teams`` section (group -> team names) and an optional
``settings`` section; see planner/settings.py for the keys.
"""
import argparse
import logging
import sys

import yaml

from planner.fair_scheduler import format_fairness_report
from planner.settings import load_tournament_file, parse_start_time
from planner.tournament_scheduler import generate_tournament_schedule


def format_schedule(result, teams) -> str:
    names = {team.id: team.name for team in teams}
    lines = []
    current_slot = None
    for match in sorted(result.all_matches, key=lambda m: (m.effective_slot, m.field)):
        if match.effective_slot != current_slot:
            if current_slot is not None:
                lines.append('')
            current_slot = match.effective_slot
            time_text = f" ({match.scheduled_time.strftime('%H:%M')})" if match.scheduled_time else ''
            lines.append(f"# Slot {current_slot + 1}{time_text}")
        home = names.get(match.team_a, match.display_a())
        away = names.get(match.team_b, match.display_b())
        tag = match.label if match.is_final else f"Group {match.group}"
        lines.append(f"Field {match.field}: {home} vs {away}  [{tag}]")
    return '\n'.join(lines)


def main():
    parser = argparse.ArgumentParser(
        description='Generate a fair group phase and playoff schedule',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python src/generate_schedule.py data/tournament.yaml
  python src/generate_schedule.py data/tournament.yaml --start 09:00 --fairness
        """
    )
    parser.add_argument('tournament_file', help='Path to tournament YAML file')
    parser.add_argument('--start', help='Start time of the first slot, e.g. 09:00')
    parser.add_argument('--fairness', action='store_true', help='Print the fairness report')
    parser.add_argument('--verbose', action='store_true', help='Log scheduling details')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        tournament = load_tournament_file(args.tournament_file)
        start_time = parse_start_time(args.start) if args.start else tournament.start_time
    except (OSError, yaml.YAMLError, ValueError, KeyError) as e:
        print(f"Error: Could not load {args.tournament_file}: {e}", file=sys.stderr)
        return 1

    if len(tournament.teams) < 2:
        print("Error: At least two teams are required", file=sys.stderr)
        return 1

    result = generate_tournament_schedule(tournament, start_time)
    print(format_schedule(result, tournament.teams))
    print()
    print(f"{len(result.group_matches)} group matches, {len(result.playoff_matches)} playoff matches, "
          f"{result.total_slots} slots, about {result.estimated_duration_minutes:.0f} minutes")

    if args.fairness:
        print()
        print(format_fairness_report(result.fairness_analysis, {t.id: t.name for t in tournament.teams}))
    return 0


if __name__ == '__main__':
    sys.exit(main())
