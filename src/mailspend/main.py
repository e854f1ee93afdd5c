"""Main service entry point."""
import sys
import time
import signal
import argparse
from datetime import datetime

from mailspend.config.manager import Config, ConfigManager
from mailspend.config.settings import AppSettings, get_settings
from mailspend.gmail.auth import run_authorization_flow
from mailspend.orchestrator.batch import BatchResult, DailyBatchDriver
from mailspend.orchestrator.window import next_run_at
from mailspend.storage.database import Database
from mailspend.storage.runs import BatchRunLog
from mailspend.storage.transactions import TransactionStore
from mailspend.utils.exceptions import ConfigError, MailSpendError
from mailspend.utils.logger import get_logger, set_log_level
from mailspend.utils.run_lock import RunLockHeld, acquire_run_lock

logger = get_logger()
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


def _load_and_validate_config() -> Config:
    """Load and validate configuration, exiting when it is unusable."""
    config_manager = ConfigManager()
    try:
        config = config_manager.load_config()
    except ConfigError as e:
        logger.critical(str(e))
        sys.exit(1)

    if not config:
        logger.critical(
            f"No configuration found. Create {config_manager.config_file} "
            "or set GEMINI_API_KEY, GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET."
        )
        sys.exit(1)

    is_valid, message = config_manager.validate_config(config)
    if not is_valid:
        logger.critical(f"Invalid configuration: {message}")
        sys.exit(1)

    if not config.gmail_refresh_token:
        logger.warning("GMAIL_BACKEND_REFRESH_TOKEN not configured. Runs will end without progress.")

    set_log_level(config.log_level)
    logger.info("Configuration loaded successfully")
    return config


def authorize_command() -> None:
    """Obtain the shared mailbox's refresh token (one-time admin setup)."""
    config_manager = ConfigManager()
    config = config_manager.load_config()
    if not config or not config.google_client_id or not config.google_client_secret:
        print("Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET first.")
        sys.exit(1)

    refresh_token = run_authorization_flow(config.google_client_id, config.google_client_secret)
    print("\nAdd this to your environment (or config.json as gmail_refresh_token):")
    print(f"GMAIL_BACKEND_REFRESH_TOKEN={refresh_token}")


def list_transactions_command(user_id: str) -> None:
    """List stored transactions for one user."""
    config = _load_and_validate_config()
    store = TransactionStore(Database(config.get_database_path(get_settings().database_file)))
    transactions = store.list_for_user(user_id)

    if not transactions:
        print(f"No transactions found for user: {user_id}")
        return

    print(f"\nTotal: {len(transactions)} transactions")
    print(f"{'Date':<12} {'Amount':>10} {'Category':<24} {'Merchant':<30} {'Bank':<12}")
    print("-" * 92)
    for txn in transactions:
        print(
            f"{txn.date.isoformat():<12} {txn.amount:>10} {txn.category:<24} "
            f"{txn.resolved_merchant[:30]:<30} {txn.bank[:12]:<12}"
        )


def list_runs_command(limit: int) -> None:
    """List the most recent batch runs."""
    config = _load_and_validate_config()
    runs = BatchRunLog(Database(config.get_database_path(get_settings().database_file))).list_runs(limit)

    if not runs:
        print("No batch runs recorded.")
        return

    print(f"{'Started':<20} {'Window start':<26} {'State':<8} {'Created':>8} {'Dupes':>6} {'Errors':>7}")
    print("-" * 80)
    for run in runs:
        state = "aborted" if run.aborted else run.state
        print(
            f"{run.started_at.strftime('%Y-%m-%d %H:%M:%S'):<20} {run.window_start.isoformat():<26} "
            f"{state:<8} {run.counters['transactions_created']:>8} "
            f"{run.counters['duplicates_skipped']:>6} {run.counters['errors']:>7}"
        )


def _run_locked(driver: DailyBatchDriver) -> BatchResult:
    """Run one batch while holding the cross-process lock; overlapping triggers are skipped."""
    try:
        with acquire_run_lock():
            return driver.run()
    except RunLockHeld as e:
        logger.warning(f"Skipping trigger: {e}")
        return BatchResult(skipped=True)


def run_once_command() -> int:
    """Run a single batch now."""
    config = _load_and_validate_config()
    driver = DailyBatchDriver.from_config(config, get_settings())
    result = _run_locked(driver)
    return 1 if result.aborted else 0


def _run_daily_loop(driver: DailyBatchDriver, config: Config, settings: AppSettings) -> None:
    """Run the batch once a day at the configured local time."""
    global shutdown_requested
    hour, minute = settings.daily_run_hour_minute()
    tz = config.get_tzinfo()

    while not shutdown_requested:
        fire_at = next_run_at(datetime.now(tz), hour, minute)
        logger.info(f"Next batch run at {fire_at.isoformat()}")

        if not _wait_until(fire_at, tz):
            break

        _run_locked(driver)

    logger.info("Service stopped gracefully")


def _wait_until(fire_at: datetime, tz) -> bool:
    """Sleep until fire_at; False when shutdown was requested meanwhile."""
    global shutdown_requested
    while not shutdown_requested:
        if datetime.now(tz) >= fire_at:
            return True
        time.sleep(1)
    return False


def main():
    """Main entry point for the MailSpend service."""
    parser = argparse.ArgumentParser(description="MailSpend bank email ingestion service")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["run", "run-once", "authorize", "list-transactions", "list-runs"],
        default="run",
        help="Command to execute (default: run)"
    )
    parser.add_argument(
        "--user",
        help="User ID (for list-transactions)"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of runs to show (for list-runs)"
    )

    args = parser.parse_args()

    if args.command == "authorize":
        authorize_command()
        return

    if args.command == "list-transactions":
        if not args.user:
            parser.error("list-transactions requires --user")
        list_transactions_command(args.user)
        return

    if args.command == "list-runs":
        list_runs_command(args.limit)
        return

    if args.command == "run-once":
        sys.exit(run_once_command())

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("MailSpend service starting...")

    try:
        settings = get_settings()
        config = _load_and_validate_config()
        driver = DailyBatchDriver.from_config(config, settings)
        _run_daily_loop(driver, config, settings)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except MailSpendError as e:
        logger.critical(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
