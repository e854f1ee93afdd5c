"""Attribution of forwarded emails to the users who forwarded them."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List

from mailspend.gmail.models import RawEmail, normalize_address
from mailspend.storage.models import User
from mailspend.utils.exceptions import GatewayUnauthenticated
from mailspend.utils.logger import get_logger

logger = get_logger()

# (user, window_start, window_end) -> messages the provider returned for that user's address
FetchEmails = Callable[[User, datetime, datetime], Iterable[RawEmail]]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class AttributionResult:
    emails_by_user: Dict[str, List[RawEmail]] = field(default_factory=dict)  # only non-empty lists
    failed_user_ids: List[str] = field(default_factory=list)


def _chronological_key(email: RawEmail) -> datetime:
    sent_at = email.sent_at()
    if sent_at is None:
        return _EPOCH
    if sent_at.tzinfo is None:
        return sent_at.replace(tzinfo=timezone.utc)
    return sent_at


def attribute_emails(
    users: Iterable[User],
    fetch: FetchEmails,
    window_start: datetime,
    window_end: datetime
) -> AttributionResult:
    """
    Group the window's forwarded emails by owning user.

    An email belongs to a user only when its From address equals the user's
    registered address. Users without matching emails are left out. A failed
    fetch is logged and recorded; it never stops the other users.

    Raises:
        GatewayUnauthenticated: The mailbox credential is missing or rejected
    """
    result = AttributionResult()

    for user in users:
        if not user.is_active:
            continue

        address = normalize_address(user.email)
        try:
            fetched = list(fetch(user, window_start, window_end))
        except GatewayUnauthenticated:
            raise
        except Exception as e:
            logger.error(f"Error fetching emails for user {user.id}: {e}")
            result.failed_user_ids.append(user.id)
            continue

        matched = [email for email in fetched if email.sender == address]
        if len(matched) != len(fetched):
            logger.debug(
                f"Dropped {len(fetched) - len(matched)} messages for user {user.id} "
                f"whose sender is not {address}"
            )

        if matched:
            result.emails_by_user[user.id] = sorted(matched, key=_chronological_key)

    logger.info(
        f"Attributed {sum(len(v) for v in result.emails_by_user.values())} emails "
        f"to {len(result.emails_by_user)} users"
    )
    return result
