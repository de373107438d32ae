"""
Prefect orchestration for the payroll sync passes

python -m payroll_sync.prefect_sync_flow --config configs/adp_workforce.toml --entity workers --run
"""

import argparse
import sys
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from prefect import flow, get_run_logger, task

from .cache_store import CacheStore, CacheStoreError
from .config_loader import ConfigLoader, ConfigurationError, EnvironmentVariableError
from .logging_config import configure_logging
from .sync_orchestrator import SyncOrchestrator
from .sync_reader import READER_REGISTRY

DEFAULT_DATABASE_DIR = Path("data/databases")

# ===================================================================
# PREFECT TASKS
# ===================================================================

@task(
    name="validate_configuration_and_environment",
    description="Validate TOML configuration and environment variables",
    retries=0
)
def validate_configuration_and_environment(config_path: str) -> Dict[str, Any]:
    """
    Validate TOML configuration and environment variables

    Args:
        config_path: Path to TOML configuration file

    Returns:
        Validation results and config summary
    """
    logger = get_run_logger()
    logger.info(f"Validating configuration: {config_path}")

    try:
        config = ConfigLoader.load_toml_config(Path(config_path))
        ConfigLoader.validate_environment_variables(config)
    except (ConfigurationError, EnvironmentVariableError) as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    logger.info("Configuration and environment validation passed")
    return {
        'status': 'valid',
        'config_summary': {
            'api_name': config.name,
            'base_url': config.base_url,
            'token_url': config.token_url,
            'requests_per_second': config.requests_per_second,
            'page_size': config.page_size,
            'max_workers': config.max_workers,
        }
    }


@task(
    name="initialise_cache_store",
    description="Create the DuckDB cache database and its tables",
    retries=1,
    retry_delay_seconds=10
)
def initialise_cache_store(config_path: str) -> str:
    """
    Create the cache database schema

    Args:
        config_path: Path to configuration file

    Returns:
        Path of the cache database
    """
    logger = get_run_logger()
    config = ConfigLoader.load_toml_config(Path(config_path))
    database_path = Path(config.cache.get(
        'database_path', DEFAULT_DATABASE_DIR / f"{config.name}_cache.db"))

    with CacheStore() as store:
        store.create_connection(database_path)
        store.create_tables()

    logger.info(f"Cache database initialised: {database_path}")
    return str(database_path)


@task(
    name="run_sync_passes",
    description="Run entity passes sharing one gateway, token and worker roster",
    retries=0
)
def run_sync_passes(config_path: str, entities: List[str], database_path: str) -> List[Dict[str, Any]]:
    """
    Run one pass per entity type against the cache database

    Passes run one after another so they share the rate limit, the bearer
    token and the worker list fetched by the first hierarchical pass.

    Args:
        config_path: Path to configuration file
        entities: Entity types to synchronise, in order
        database_path: Cache database path

    Returns:
        Pass results as dictionaries
    """
    logger = get_run_logger()
    config = ConfigLoader.load_toml_config(Path(config_path))

    with CacheStore() as store:
        store.create_connection(Path(database_path))
        store.create_tables()

        orchestrator = SyncOrchestrator.from_config(config, cache_store=store)
        try:
            results = orchestrator.run_passes(entities)
        finally:
            orchestrator.close()

    for result in results:
        if result.status == 'failed':
            logger.error(
                f"{result.entity}: FAILED ({result.error_category}, "
                f"status {result.status_code}) {result.error_message}"
            )
        else:
            logger.info(
                f"{result.entity}: {result.status.upper()} {result.records_written} records, "
                f"{result.failed} skipped parents"
            )
    return [result.to_dict() for result in results]


# ===================================================================
# PREFECT FLOWS
# ===================================================================

@flow(
    name="payroll-sync-pipeline",
    description="Synchronise payroll entity types into the local cache",
    version="1.0.0",
    timeout_seconds=7200,
    log_prints=True
)
def payroll_sync_flow(config_path: str, entities: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Complete sync workflow using Prefect orchestration

    Args:
        config_path: Path to TOML configuration file
        entities: Entity types to synchronise; every type when omitted

    Returns:
        Pipeline status and per-pass results
    """
    logger = get_run_logger()
    entities = list(entities or READER_REGISTRY.keys())
    logger.info("Starting payroll sync pipeline")
    logger.info(f"Configuration: {config_path}")
    logger.info(f"Entities: {', '.join(entities)}")

    try:
        validation_results = validate_configuration_and_environment(config_path)
        database_path = initialise_cache_store(config_path)
        pass_results = run_sync_passes(config_path, entities, database_path)
    except (ConfigurationError, EnvironmentVariableError, CacheStoreError) as e:
        logger.error(f"Pipeline execution failed: {e}")
        return {
            'pipeline_status': 'FAILED',
            'error': str(e),
            'pass_results': [],
        }

    failed = [r for r in pass_results if r['status'] == 'failed']
    logger.info(f"Results: {len(pass_results) - len(failed)}/{len(pass_results)} passes without failure")

    return {
        'pipeline_status': 'FAILED' if failed else 'SUCCESS',
        'data_source': validation_results['config_summary']['api_name'],
        'database_path': database_path,
        'pass_results': pass_results,
    }


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function; returns the process exit code"""
    parser = argparse.ArgumentParser(
        description="Prefect payroll sync pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync every entity type
  payroll-sync --config configs/adp_workforce.toml --run

  # Sync selected entity types
  payroll-sync --config configs/adp_workforce.toml --entity workers --entity state_tax_profiles --run

  # Validate configuration only
  payroll-sync --config configs/adp_workforce.toml --validate-only
        """
    )

    parser.add_argument("--config", required=True, help="Path to TOML configuration file")
    parser.add_argument("--entity", action="append", choices=sorted(READER_REGISTRY),
                        help="Entity type to sync (repeatable, default: all)")
    parser.add_argument("--run", action="store_true", help="Run the sync pipeline")
    parser.add_argument("--validate-only", action="store_true", help="Only validate configuration")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    try:
        config = ConfigLoader.load_toml_config(Path(args.config))
        logging_settings = dict(config.logging)
        if args.verbose:
            logging_settings['level'] = 'DEBUG'
        configure_logging(logging_settings)

        if args.validate_only:
            ConfigLoader.validate_environment_variables(config)
            print("Configuration validation passed!")
            print(f"API: {config.name}")
            print(f"Base URL: {config.base_url}")
            print(f"Rate limit: {config.requests_per_second} req/sec")
            print(f"Workers: {config.max_workers}")
            return 0

        if not args.run:
            parser.print_help()
            return 1

        result = payroll_sync_flow(config_path=args.config, entities=args.entity)

        print("\n" + "=" * 70)
        print("SYNC EXECUTION SUMMARY")
        print("=" * 70)
        print(f"Status: {result.get('pipeline_status', 'UNKNOWN')}")
        if result.get('error'):
            print(f"Pipeline failed: {result['error']}")
        for pass_result in result.get('pass_results', []):
            line = f"  {pass_result['status'].upper()} {pass_result['entity']}: {pass_result['records_written']} records"
            if pass_result['status'] == 'failed':
                line += f" ({pass_result['error_category']}, status {pass_result['status_code']})"
            elif args.verbose:
                line += f", {pass_result['failed']}/{pass_result['processed']} parents skipped"
            print(line)
        print("=" * 70)

        return 0 if result.get('pipeline_status') == 'SUCCESS' else 1

    except (ConfigurationError, EnvironmentVariableError, FileNotFoundError) as e:
        print(f"\nExecution failed: {e}")
        if args.verbose:
            print(f"Traceback: {traceback.format_exc()}")
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
