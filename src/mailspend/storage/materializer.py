"""Deduplicate candidate expenses and persist the novel ones."""
from datetime import date, datetime, timezone

from .models import EmailMeta, MaterializeOutcome, Transaction
from .transactions import TransactionStore, amount_key
from mailspend.llm.models import CategorizedMerchant, Category, ExtractedExpense
from mailspend.utils.exceptions import PersistenceConflict
from mailspend.utils.logger import get_logger

logger = get_logger()


class TransactionMaterializer:
    """Turns (expense, categorization, email) into at most one stored Transaction."""

    def __init__(self, store: TransactionStore, email_html_chars: int = 5000):
        self.store = store
        self.email_html_chars = email_html_chars

    @staticmethod
    def resolve_date(expense: ExtractedExpense, email_meta: EmailMeta) -> date:
        """Date stated in the email body, else the email's own date, as a UTC calendar date."""
        if expense.date:
            return expense.date
        if email_meta.sent_at:
            sent_at = email_meta.sent_at
            if sent_at.tzinfo is not None:
                sent_at = sent_at.astimezone(timezone.utc)
            return sent_at.date()
        logger.warning(f"Email {email_meta.message_id} has no usable date; using today (UTC)")
        return datetime.now(timezone.utc).date()

    def is_duplicate(self, user_id: str, expense: ExtractedExpense, resolved_date: date) -> bool:
        """Cheap pre-check run before categorization."""
        return self.store.exists(user_id, expense.amount, expense.merchant, resolved_date)

    @staticmethod
    def clamp_category(label: str) -> Category:
        """Map any label onto a stored category; unknown labels become Otros."""
        category = Category.coerce(label)
        if category is None:
            logger.warning(f"Category '{label}' is outside the taxonomy, storing as {Category.OTHER.value}")
            return Category.OTHER
        return category

    def try_materialize(
        self,
        user_id: str,
        expense: ExtractedExpense,
        categorized: CategorizedMerchant,
        email_meta: EmailMeta
    ) -> MaterializeOutcome:
        """Create the transaction unless its dedup key is already stored."""
        txn_date = self.resolve_date(expense, email_meta)

        # Re-check right before the write; the unique constraint closes the remaining race
        if self.is_duplicate(user_id, expense, txn_date):
            logger.info(f"Skipping duplicate {expense.merchant} {amount_key(expense.amount)} on {txn_date}")
            return MaterializeOutcome(skipped=True)

        txn = Transaction(
            user_id=user_id,
            amount=expense.amount,
            merchant=expense.merchant,
            resolved_merchant=categorized.name or expense.merchant,
            category=self.clamp_category(categorized.category).value,
            bank=expense.bank,
            payment_method=expense.payment_method,
            date=txn_date,
            email_html=(email_meta.html_body or "")[:self.email_html_chars],
            email_subject=email_meta.subject or ""
        )

        try:
            self.store.insert(txn)
        except PersistenceConflict as e:
            logger.info(f"Concurrent duplicate rejected by store: {e}")
            return MaterializeOutcome(skipped=True)

        logger.info(
            f"Created transaction {txn.id}: {txn.resolved_merchant} "
            f"{amount_key(txn.amount)} [{txn.category}] on {txn.date}"
        )
        return MaterializeOutcome(created=txn)
