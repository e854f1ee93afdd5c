"""Daily batch driver: mailbox -> extraction -> dedup -> categorization -> storage.

Users are processed on a bounded worker pool; each worker thread gets its own
Gmail client (httplib2 transports are not thread-safe). Emails of one user are
processed sequentially, oldest first. Nothing escapes ``run()``: every outcome
is reported through the returned counters.
"""
import concurrent.futures
import threading
from dataclasses import dataclass, fields
from datetime import datetime, tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional

from .attribution import attribute_emails
from .window import compute_daily_window
from mailspend.config.manager import Config, host_timezone
from mailspend.config.settings import AppSettings
from mailspend.gmail.auth import MailboxCredentials
from mailspend.gmail.gateway import GmailGateway
from mailspend.gmail.models import EmailImage, RawEmail
from mailspend.llm.categorizer import MerchantCategorizer
from mailspend.llm.client import create_client
from mailspend.llm.extractor import ExpenseExtractor
from mailspend.llm.merchant_cache import MerchantCache
from mailspend.storage.database import Database
from mailspend.storage.materializer import TransactionMaterializer
from mailspend.storage.models import EmailMeta, User
from mailspend.storage.runs import BatchRunLog
from mailspend.storage.transactions import TransactionStore
from mailspend.storage.users import UserDirectory
from mailspend.utils.exceptions import GatewayError, GatewayUnauthenticated, StorageError
from mailspend.utils.logger import get_logger, set_user_context

logger = get_logger()


class BatchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PER_USER_LOOP = "per_user_loop"
    DONE = "done"


@dataclass
class UserResult:
    user_id: str
    emails_processed: int = 0
    transactions_created: int = 0
    duplicates_skipped: int = 0
    not_transactions: int = 0
    emails_failed: int = 0
    error: Optional[str] = None  # gateway failure that cut the user short


@dataclass
class BatchResult:
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    users_processed: int = 0
    emails_processed: int = 0
    transactions_created: int = 0
    duplicates_skipped: int = 0
    not_transactions: int = 0
    emails_failed: int = 0
    errors: int = 0  # users whose processing failed
    aborted: bool = False  # fatal failure before any user was processed
    skipped: bool = False  # trigger ignored because a run was in progress
    run_id: Optional[str] = None

    def add(self, user_result: UserResult) -> None:
        """Fold one user's counters in; a user cut short counts as an error."""
        if user_result.error:
            self.errors += 1
        else:
            self.users_processed += 1
        for f in fields(UserResult):
            if f.name not in ("user_id", "error"):
                setattr(self, f.name, getattr(self, f.name) + getattr(user_result, f.name))

    def counters(self) -> Dict[str, int]:
        return {
            "users_processed": self.users_processed,
            "emails_processed": self.emails_processed,
            "transactions_created": self.transactions_created,
            "duplicates_skipped": self.duplicates_skipped,
            "not_transactions": self.not_transactions,
            "emails_failed": self.emails_failed,
            "errors": self.errors,
        }


class DailyBatchDriver:
    """Orchestrates one daily ingestion run across all active users."""

    def __init__(
        self,
        users: UserDirectory,
        gateway_factory: Callable[[], GmailGateway],
        extractor: ExpenseExtractor,
        categorizer: MerchantCategorizer,
        materializer: TransactionMaterializer,
        run_log: Optional[BatchRunLog] = None,
        tz: Optional[tzinfo] = None,
        max_workers: int = 3,
        max_results: int = 50,
        include_images: bool = False,
        max_images: int = 3,
        clock: Callable[[Optional[tzinfo]], datetime] = datetime.now
    ):
        self.users = users
        self.gateway_factory = gateway_factory
        self.extractor = extractor
        self.categorizer = categorizer
        self.materializer = materializer
        self.run_log = run_log
        self.tz = tz or host_timezone()
        self.max_workers = max_workers
        self.max_results = max_results
        self.include_images = include_images
        self.max_images = max_images
        self.clock = clock

        self.state = BatchState.IDLE
        self._run_lock = threading.Lock()
        self._local = threading.local()

    @classmethod
    def from_config(cls, config: Config, settings: AppSettings) -> "DailyBatchDriver":
        """Wire the production collaborators."""
        db = Database(config.get_database_path(settings.database_file))
        credentials = MailboxCredentials(
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            refresh_token=config.gmail_refresh_token
        )
        client = create_client(config.gemini_api_key, settings.llm_timeout_seconds)
        cache = MerchantCache(
            fuzzy_threshold=settings.merchant_cache_fuzzy_threshold,
            min_fuzzy_length=settings.merchant_cache_min_fuzzy_length
        )

        def gateway_factory() -> GmailGateway:
            return GmailGateway(
                credentials,
                timeout_seconds=settings.gmail_timeout_seconds,
                page_size=settings.gmail_page_size
            )

        return cls(
            users=UserDirectory(db),
            gateway_factory=gateway_factory,
            extractor=ExpenseExtractor(
                client,
                model_name=settings.llm_model_name,
                temperature=settings.extraction_temperature,
                prompt_html_chars=settings.prompt_html_chars
            ),
            categorizer=MerchantCategorizer(
                client,
                model_name=settings.llm_model_name,
                temperature=settings.categorization_temperature,
                cache=cache
            ),
            materializer=TransactionMaterializer(TransactionStore(db), settings.email_html_chars),
            run_log=BatchRunLog(db),
            tz=config.get_tzinfo(),
            max_workers=config.max_concurrent_users,
            max_results=settings.gmail_max_results,
            include_images=settings.include_image_attachments,
            max_images=settings.max_images_per_email
        )

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> BatchResult:
        """Process yesterday's forwarded emails for every active user. Never raises."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("A batch run is already in progress; ignoring this trigger")
            return BatchResult(skipped=True)

        try:
            return self._run()
        except Exception as e:
            logger.critical(f"Unexpected failure in batch run: {e}")
            self.state = BatchState.DONE
            return BatchResult(aborted=True)
        finally:
            self._run_lock.release()

    def _run(self) -> BatchResult:
        window_start, window_end = compute_daily_window(self.clock(self.tz))
        result = BatchResult(window_start=window_start, window_end=window_end)

        self.state = BatchState.FETCHING
        logger.info(f"Batch run for window [{window_start.isoformat()}, {window_end.isoformat()})")
        result.run_id = self._record_start(window_start, window_end)

        try:
            users = self.users.list_active_users()
            gateway = self._thread_gateway()

            def fetch(user: User, start: datetime, end: datetime):
                return gateway.fetch_messages(user.email, start, end, self.max_results)

            attribution = attribute_emails(users, fetch, window_start, window_end)
        except GatewayUnauthenticated as e:
            logger.critical(f"Mailbox authentication failed; run ends with no progress: {e}")
            result.aborted = True
        except Exception as e:
            logger.critical(f"Failed to collect emails; run ends with no progress: {e}")
            result.aborted = True
        else:
            result.errors += len(attribution.failed_user_ids)
            self.state = BatchState.PER_USER_LOOP
            users_by_id = {user.id: user for user in users}
            self._process_users(users_by_id, attribution.emails_by_user, result)

        self.state = BatchState.DONE
        self._record_completion(result)
        self._log_results(result)
        return result

    def _process_users(self, users_by_id: Dict[str, User], emails_by_user: Dict[str, List[RawEmail]], result: BatchResult) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_user = {
                executor.submit(self.process_user_thread_safe, users_by_id[user_id], emails): user_id
                for user_id, emails in emails_by_user.items()
            }

            for future in concurrent.futures.as_completed(future_to_user):
                user_id = future_to_user[future]
                try:
                    result.add(future.result())
                except Exception as e:
                    logger.error(f"Error processing user {user_id}: {e}")
                    result.errors += 1

    def process_user_thread_safe(self, user: User, emails: List[RawEmail]) -> UserResult:
        """Process one user's emails in order.

        A gateway error stops the user; the counters gathered so far are kept and
        the failure is reported in ``UserResult.error``.
        """
        set_user_context(user.id)
        try:
            logger.info(f"Processing {len(emails)} emails")
            user_result = UserResult(user.id)

            for email in emails:
                try:
                    self._process_email(user, email, user_result)
                except GatewayError as e:
                    logger.error(f"Mailbox failure on email {email.id}; stopping this user: {e}")
                    user_result.error = str(e) or type(e).__name__
                    break
                except Exception as e:
                    logger.error(f"Failed to process email {email.id} ('{email.subject}'): {e}")
                    user_result.emails_failed += 1

            logger.info(
                f"Done: {user_result.transactions_created} created, "
                f"{user_result.duplicates_skipped} duplicates, "
                f"{user_result.not_transactions} not transactions, "
                f"{user_result.emails_failed} failed"
            )
            return user_result
        finally:
            set_user_context(None)

    def _process_email(self, user: User, email: RawEmail, user_result: UserResult) -> None:
        expense = self.extractor.extract(email.html_body, email.subject, self._load_images(email))
        if expense is None:
            user_result.not_transactions += 1
            user_result.emails_processed += 1
            return

        email_meta = EmailMeta(
            message_id=email.id,
            subject=email.subject,
            html_body=email.html_body,
            sent_at=email.sent_at()
        )

        # Known duplicates skip the categorization call
        txn_date = self.materializer.resolve_date(expense, email_meta)
        if self.materializer.is_duplicate(user.id, expense, txn_date):
            logger.debug(f"Duplicate expense in email {email.id}")
            user_result.duplicates_skipped += 1
            user_result.emails_processed += 1
            return

        categorized = self.categorizer.categorize(expense.merchant, user.country)
        outcome = self.materializer.try_materialize(user.id, expense, categorized, email_meta)

        if outcome.created:
            user_result.transactions_created += 1
        else:
            user_result.duplicates_skipped += 1
        user_result.emails_processed += 1

    def _load_images(self, email: RawEmail) -> List[EmailImage]:
        if not self.include_images:
            return []

        images = []
        for attachment in [a for a in email.attachments if a.is_image][:self.max_images]:
            data = self._thread_gateway().fetch_attachment(email.id, attachment.attachment_id)
            if data:
                images.append(EmailImage(data=data, mime_type=attachment.mime_type))
        return images

    def _thread_gateway(self) -> GmailGateway:
        """Gateway bound to the calling thread."""
        gateway = getattr(self._local, "gateway", None)
        if gateway is None:
            gateway = self.gateway_factory()
            self._local.gateway = gateway
        return gateway

    def _record_start(self, window_start: datetime, window_end: datetime) -> Optional[str]:
        if not self.run_log:
            return None
        try:
            return self.run_log.start_run(window_start, window_end, self.state.value)
        except StorageError as e:
            logger.warning(f"Could not record run start: {e}")
            return None

    def _record_completion(self, result: BatchResult) -> None:
        if not self.run_log or not result.run_id:
            return
        try:
            self.run_log.complete_run(result.run_id, self.state.value, result.aborted, result.counters())
        except StorageError as e:
            logger.warning(f"Could not record run completion: {e}")

    @staticmethod
    def _log_results(result: BatchResult) -> None:
        logger.info(
            f"Batch complete: "
            f"{result.users_processed} users, "
            f"{result.emails_processed} emails processed, "
            f"{result.transactions_created} transactions created, "
            f"{result.duplicates_skipped} duplicates skipped, "
            f"{result.not_transactions} not transactions, "
            f"{result.emails_failed} emails failed, "
            f"{result.errors} user errors"
            + (" (aborted)" if result.aborted else "")
        )
