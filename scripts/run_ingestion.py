# scripts/run_ingestion.py
"""
Main execution script for NYC Taxi batch ingestion

Ingests local monthly TLC trip files into the canonical per-category
tables. Re-running a file, or a file that overlaps one already loaded,
inserts only the trips that are not there yet.

Usage Examples:
    # Create the staging area and canonical table
    taxi-ingest --category green --init

    # Ingest one file
    taxi-ingest --category green --period 2019-01 --file data/green_tripdata_2019-01.csv.gz

    # Backfill several months from a directory
    taxi-ingest --category yellow --input-dir data/ --periods 2019-01 2019-02 2019-03

    # Dry run against an in-memory store with local staging
    taxi-ingest --category green --store memory --staging local --init \\
        --period 2019-01 --file data/green_tripdata_2019-01.csv
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from taxi_ingest.config.settings import STAGING_BACKENDS, STORE_BACKENDS, settings
from taxi_ingest.models.batch import Period
from taxi_ingest.models.trip_schema import TripCategory
from taxi_ingest.orchestrator.ingestion_pipeline import IngestionPipeline, IngestionResult
from taxi_ingest.utils.logger import setup_pipeline_logging, get_logger
from taxi_ingest.utils.exceptions import PipelineError, ConfigurationError


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='NYC Taxi idempotent batch ingestion',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--category',
        choices=[c.value for c in TripCategory],
        help='Taxi category to ingest'
    )

    # Input selection
    parser.add_argument('--file', type=str, help='Local trip file (.csv or .csv.gz) to ingest')
    parser.add_argument('--period', type=str, help='Month the file covers (format: YYYY-MM)')
    parser.add_argument(
        '--source-file',
        type=str,
        help='Lineage name recorded for the file (default: file name without .gz)'
    )
    parser.add_argument('--input-dir', type=str, help='Directory holding monthly trip files')
    parser.add_argument(
        '--periods',
        nargs='+',
        metavar='YYYY-MM',
        help='Months to ingest from --input-dir'
    )

    # Backends
    parser.add_argument('--store', choices=STORE_BACKENDS, help='Canonical store backend')
    parser.add_argument('--staging', choices=STAGING_BACKENDS, help='Staging area backend')

    # Processing options
    parser.add_argument('--max-workers', type=int, help='Maximum number of parallel periods')
    parser.add_argument('--max-retries', type=int, help='Retries per lifecycle step for storage errors')
    parser.add_argument(
        '--release-on-failure',
        action='store_true',
        help='Delete the staged artifact even when promotion fails'
    )

    # Logging options
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging level (default: LOG_LEVEL or INFO)'
    )
    parser.add_argument('--log-dir', type=str, help='Directory for log files (default: console only)')

    # Utility operations
    parser.add_argument('--init', action='store_true', help='Create the staging area and canonical table')
    parser.add_argument('--status', action='store_true', help='Check pipeline status and exit')
    parser.add_argument('--cleanup', action='store_true', help='Purge old staging artifacts and exit')
    parser.add_argument(
        '--cleanup-days',
        type=int,
        default=7,
        help='Purge staging artifacts older than this many days (default: 7)'
    )
    parser.add_argument('--validate-config', action='store_true', help='Validate configuration and exit')

    # Output options
    parser.add_argument(
        '--output-format',
        choices=['text', 'json'],
        default='text',
        help='Output format (default: text)'
    )

    return parser.parse_args(argv)


def setup_environment(args):
    """Setup logging and apply command line overrides to settings"""
    if args.log_level:
        settings.pipeline.log_level = args.log_level
    setup_pipeline_logging(log_level=settings.pipeline.log_level, log_dir=args.log_dir)

    if args.max_workers:
        settings.pipeline.max_workers = args.max_workers

    if args.max_retries is not None:
        settings.pipeline.max_retries = args.max_retries

    if args.release_on_failure:
        settings.pipeline.release_on_failure = True


def print_status(status: dict, output_format: str):
    """Print pipeline status"""
    if output_format == 'json':
        print(json.dumps(status, indent=2, default=str))
    else:
        print("=== Pipeline Status ===")
        print(f"Status: {status['pipeline_status']}")
        if status['pipeline_status'] == 'unhealthy':
            print(f"Error: {status.get('error', 'Unknown error')}")
            return
        print(f"Staging: {status['staging_backend']} (reachable: {status['staging_connectivity']})")
        print(f"Store: {status['store_backend']} (reachable: {status['store_connectivity']})")
        print(f"Data Directory: {status['data_directory']}")
        print(f"Max Workers: {status['max_workers']}")
        print(f"Timestamp: {status['timestamp']}")


def print_results(results: List[IngestionResult], output_format: str):
    """Print ingestion results"""
    if output_format == 'json':
        print(json.dumps([result.to_dict() for result in results], indent=2, default=str))
        return

    print("=== Ingestion Results ===")
    for result in results:
        print(f"{result.source_file} [{result.period}]: {result.status} "
              f"({result.processing_time_seconds:.2f} seconds)")
        if result.report:
            report = result.report
            print(f"  Staged: {report.rows_staged:,}  Rejected: {report.rows_rejected:,}  "
                  f"Duplicates removed: {report.duplicates_removed:,}")
            print(f"  Inserted: {report.rows_inserted:,}  Skipped: {report.rows_skipped:,}")
        if result.rejected:
            for record in result.rejected[:3]:
                print(f"  - rejected row {record.position}: {record.reason}")
            if len(result.rejected) > 3:
                print(f"  ... and {len(result.rejected) - 3} more rejected rows")
        if result.error:
            print(f"  Error: {result.error}")


def exit_code_for(results: List[IngestionResult]) -> int:
    failed = sum(1 for result in results if not result.succeeded)
    if failed == 0:
        return 0
    return 2 if failed == len(results) else 1


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = parse_arguments(argv)

    try:
        setup_environment(args)
        logger = get_logger(__name__)

        logger.info("Starting NYC Taxi batch ingestion")
        logger.info(f"Arguments: {vars(args)}")

        if args.validate_config:
            missing = settings.missing_settings(store_backend=args.store, staging_backend=args.staging)
            if not missing:
                print("✓ Configuration is valid")
                return 0
            print(f"✗ Configuration is invalid - missing: {', '.join(missing)}")
            return 1

        pipeline = IngestionPipeline.from_settings(
            settings, store_backend=args.store, staging_backend=args.staging
        )

        if args.status:
            status = pipeline.get_pipeline_status()
            print_status(status, args.output_format)
            return 0 if status['pipeline_status'] == 'healthy' else 1

        if args.cleanup:
            cleanup_results = pipeline.cleanup_resources(args.cleanup_days)
            if args.output_format == 'json':
                print(json.dumps(cleanup_results, indent=2))
            else:
                print("=== Cleanup Results ===")
                print(f"Status: {cleanup_results['status']}")
                print(f"Staging artifacts cleaned: {cleanup_results.get('staging_artifacts_cleaned', 0)}")
                if cleanup_results['status'] == 'error':
                    print(f"Error: {cleanup_results.get('error')}")
            return 0 if cleanup_results['status'] == 'success' else 1

        if not args.category:
            raise ConfigurationError("--category is required for --init and ingestion")

        if args.init:
            pipeline.ensure_resources(args.category)
            print(f"✓ Resources ready for {args.category}")

        if args.file:
            if not args.period:
                raise ConfigurationError("--period is required with --file")
            results = [
                pipeline.ingest_file(
                    args.category,
                    Period.parse(args.period),
                    args.file,
                    source_file=args.source_file
                )
            ]
        elif args.input_dir:
            if not args.periods:
                raise ConfigurationError("--periods is required with --input-dir")
            periods = [Period.parse(value) for value in args.periods]
            results = pipeline.ingest_periods(args.category, periods, args.input_dir)
        elif args.init:
            return 0
        else:
            raise ConfigurationError("Nothing to do: pass --file/--period or --input-dir/--periods")

        print_results(results, args.output_format)

        exit_code = exit_code_for(results)
        if exit_code == 0:
            logger.info("Pipeline completed successfully")
        elif exit_code == 1:
            logger.warning("Pipeline completed with errors")
        else:
            logger.error("Pipeline failed")
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}")
        return 1

    except PipelineError as e:
        print(f"Pipeline Error: {e}")
        return 2

    except KeyboardInterrupt:
        print("\nPipeline interrupted by user")
        return 130

    except Exception as e:
        print(f"Unexpected error: {e}")
        if settings.pipeline.log_level == 'DEBUG':
            import traceback
            traceback.print_exc()
        return 3


if __name__ == '__main__':
    sys.exit(main())
