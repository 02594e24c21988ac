"""Command-line interface for the trainload platform."""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from trainload.config import LOG_LEVEL, SOURCE_DIRECTORY


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='trainload',
        description='Trainload - Ingest activity files and follow your training load',
        epilog='For more information on a specific command, run: trainload <command> --help'
    )
    parser.add_argument(
        '--db-path',
        help='SQLite database file (default: TRAINLOAD_DB_PATH or data/trainload.db)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands',
        metavar='<command>'
    )

    # Sync command
    sync_parser = subparsers.add_parser(
        'sync',
        help='Sync activity files from a local directory',
        description='Scan a directory for GPX, TCX and FIT files and store the activities they hold'
    )
    sync_parser.add_argument(
        'source',
        nargs='?',
        default=SOURCE_DIRECTORY,
        help='Directory holding activity files (or set TRAINLOAD_SOURCE_DIR env var)'
    )
    sync_parser.add_argument(
        '--recursive',
        action='store_true',
        help='Also scan sub-directories'
    )
    sync_parser.add_argument(
        '--extract-archives',
        action='store_true',
        help='Extract activity files from zip, tar and gz archives first'
    )
    sync_parser.add_argument(
        '--delete-archives',
        action='store_true',
        help='Delete archives once extracted'
    )
    sync_parser.add_argument(
        '--no-detect-sport',
        action='store_true',
        help='Do not guess the sport of activities with an unknown type'
    )
    sync_parser.add_argument(
        '--full',
        action='store_true',
        help='Ignore the last sync date and process every file'
    )

    # Trend command
    trend_parser = subparsers.add_parser(
        'trend',
        help='Compute the fitness trend',
        description='Compute fitness (CTL), fatigue (ATL) and form (TSB) day by day'
    )
    trend_parser.add_argument(
        '--impulse-mode',
        choices=['HRSS', 'TRIMP'],
        default='HRSS',
        help='Heart rate based score used (default: HRSS)'
    )
    trend_parser.add_argument(
        '--ignore-before',
        type=date.fromisoformat,
        help='Ignore activities before this date (YYYY-MM-DD)'
    )
    trend_parser.add_argument(
        '--ignore-pattern',
        action='append',
        default=[],
        help='Ignore activities whose name contains this text (repeatable)'
    )
    trend_parser.add_argument(
        '--no-power',
        action='store_true',
        help='Do not use power stress scores'
    )
    trend_parser.add_argument(
        '--swim',
        action='store_true',
        help='Use swim stress scores'
    )
    trend_parser.add_argument(
        '--skip-type',
        action='append',
        default=[],
        help='Skip activities of this sport type, e.g. Walk (repeatable)'
    )
    trend_parser.add_argument(
        '--estimated-power',
        action='store_true',
        help='Use power stress scores of rides without power meter'
    )
    trend_parser.add_argument(
        '--last',
        type=int,
        default=30,
        help='Number of days to display (default: 30)'
    )
    trend_parser.add_argument(
        '--output',
        help='Write the full trend to a CSV file'
    )

    # Activities command
    activities_parser = subparsers.add_parser(
        'activities',
        help='List stored activities',
        description='List the activities stored in the local database'
    )
    activities_parser.add_argument(
        '--limit',
        type=int,
        default=20,
        help='Number of most recent activities to display (default: 20)'
    )

    # Clear command
    subparsers.add_parser(
        'clear',
        help='Delete stored activities',
        description='Delete every stored activity and the last sync date'
    )

    return parser


def cmd_sync(args) -> int:
    """Handle sync command."""
    from trainload.config import FileConnectorConfig
    from trainload.data.athlete_snapshot import AthleteSnapshotResolverService
    from trainload.data.pipeline_orchestrator import FileSyncOrchestrator
    from trainload.models.sync_events import SyncEventType
    from trainload.storage.database.manager import DatabaseManager

    if not args.source:
        print("ERROR: No source directory given (argument or TRAINLOAD_SOURCE_DIR env var)")
        return 1

    print("=" * 70)
    print("ACTIVITY FILES SYNC")
    print("=" * 70)

    config = FileConnectorConfig(
        source_directory=Path(args.source),
        scan_sub_directories=args.recursive,
        extract_archive_files=args.extract_archives,
        delete_archives_after_extract=args.delete_archives,
        detect_sport_type_when_unknown=not args.no_detect_sport,
    )
    db = DatabaseManager(args.db_path)
    orchestrator = FileSyncOrchestrator(config, db, AthleteSnapshotResolverService(db))

    def on_event(event):
        if event.type == SyncEventType.ACTIVITY:
            status = "created" if event.is_new else "exists"
            print(f"  [{status}] {event.activity.name} ({event.activity.start_time.isoformat()})")
        elif event.type == SyncEventType.ERROR:
            print(f"  [error] {event.error.description}")
        elif event.description:
            print(f"  {event.description}")

    try:
        stream = orchestrator.sync(full=args.full, on_event=on_event)
    except KeyboardInterrupt:
        orchestrator.stop()
        return 130

    created = [event for event in stream.of_type(SyncEventType.ACTIVITY) if event.is_new]
    errors = stream.of_type(SyncEventType.ERROR)

    print("\n" + "=" * 40)
    print("SYNC RESULTS")
    print("=" * 40)
    print(f"New activities: {len(created)}")
    print(f"Errors: {len(errors)}")
    print(f"Stored activities: {db.count()}")

    return 0 if stream.error is None else 1


def cmd_trend(args) -> int:
    """Handle trend command."""
    from trainload.analytics.fitness_trend import FitnessService
    from trainload.config import FitnessTrendConfig, UserSettings
    from trainload.exceptions import FitnessTrendError
    from trainload.models.fitness import HeartRateImpulseMode
    from trainload.storage.database.manager import DatabaseManager

    config = FitnessTrendConfig(
        heart_rate_impulse_mode=HeartRateImpulseMode(args.impulse_mode),
        ignore_before_date=args.ignore_before,
        ignore_activity_name_patterns=args.ignore_pattern,
        allow_estimated_power_stress_score=args.estimated_power,
    )
    user_settings = UserSettings(
        power_meter_enable=not args.no_power,
        swim_enable=args.swim,
        skip_activity_types=args.skip_type,
    )

    service = FitnessService(DatabaseManager(args.db_path))
    try:
        trend = service.compute_trend(config, user_settings)
    except FitnessTrendError as e:
        print(f"ERROR: {e.message}")
        return 1

    if args.output:
        service.trend_to_dataframe(trend).write_csv(args.output)
        print(f"Fitness trend written to {args.output}")

    print("=" * 70)
    print("FITNESS TREND")
    print("=" * 70)
    print(f"{'Date':<12}{'Stress':>8}{'Fitness':>10}{'Fatigue':>10}{'Form':>10}")

    real_days = [day for day in trend if not day.preview_day]
    for day in real_days[-args.last:]:
        print(
            f"{day.date.date().isoformat():<12}{day.print_final_stress_score():>8}"
            f"{day.print_fitness():>10}{day.print_fatigue():>10}{day.print_form():>10}"
        )

    return 0


def cmd_activities(args) -> int:
    """Handle activities command."""
    from trainload.storage.database.manager import DatabaseManager

    activities = DatabaseManager(args.db_path).fetch()
    if not activities:
        print("No activities stored. Run 'trainload sync' first")
        return 0

    print(f"{len(activities)} activities stored\n")
    for activity in activities[-args.limit:]:
        distance = activity.stats.distance if activity.stats else None
        distance_km = f"{distance / 1000:.1f} km" if distance else "-"
        print(f"{activity.start_time.isoformat():<27}{activity.type.value:<14}{distance_km:>10}  {activity.name}")

    return 0


def cmd_clear(args) -> int:
    """Handle clear command."""
    from trainload.storage.database.manager import DatabaseManager

    DatabaseManager(args.db_path).clear()
    print("Stored activities and sync date cleared")
    return 0


COMMANDS = {
    'sync': cmd_sync,
    'trend': cmd_trend,
    'activities': cmd_activities,
    'clear': cmd_clear,
}


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(args.verbose)
    return COMMANDS[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
