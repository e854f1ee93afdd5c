"""Gmail gateway for the centralized forwarding mailbox."""
from datetime import datetime
from ssl import SSLError
from typing import Iterator, Optional

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .auth import MailboxCredentials, get_credentials
from .mime import decode_base64url, parse_message
from .models import RawEmail, normalize_address
from mailspend.utils.exceptions import GatewayUnauthenticated, GatewayUnavailable
from mailspend.utils.logger import get_logger
from mailspend.utils.retry import retry_with_backoff

logger = get_logger()

GATEWAY_RETRYABLE_ERRORS = (HttpError, SSLError, OSError, ConnectionError, TimeoutError, httplib2.HttpLib2Error)


def build_query(sender_filter: str, window_start: datetime, window_end: datetime) -> str:
    """Gmail search query for one sender over a half-open [start, end) window."""
    return (
        f"from:{sender_filter} "
        f"after:{int(window_start.timestamp())} "
        f"before:{int(window_end.timestamp())}"
    )


def _validate_sender(sender_filter: str) -> str:
    candidate = (sender_filter or "").strip()
    if not candidate or any(sep in candidate for sep in (",", ";", " ")):
        raise ValueError(f"sender_filter must be a single address: {sender_filter!r}")
    if normalize_address(candidate) != candidate.lower() or "@" not in candidate:
        raise ValueError(f"sender_filter must be a single address: {sender_filter!r}")
    return candidate


class GmailGateway:
    """Lists and fetches messages from the shared mailbox. No business logic."""

    def __init__(
        self,
        credentials: MailboxCredentials,
        timeout_seconds: int = 30,
        page_size: int = 50,
        service=None
    ):
        self.page_size = page_size
        if service is None:
            service = self._build_service(credentials, timeout_seconds)
        self.service = service

    @staticmethod
    def _build_service(credentials: MailboxCredentials, timeout_seconds: int):
        google_credentials = get_credentials(credentials)
        # Every request (and token refresh) goes through this bounded-timeout transport
        http = AuthorizedHttp(google_credentials, http=httplib2.Http(timeout=timeout_seconds))
        return build("gmail", "v1", http=http, cache_discovery=False)

    def fetch_messages(
        self,
        sender_filter: str,
        window_start: datetime,
        window_end: datetime,
        max_results: int = 50
    ) -> Iterator[RawEmail]:
        """
        Lazily list and fetch messages sent by one address within a window.

        Arguments are validated eagerly; provider errors surface while iterating.
        A fresh call re-lists from the provider.

        Raises:
            ValueError: Invalid sender filter or empty window
            GatewayUnauthenticated: Credential missing or rejected
            GatewayUnavailable: Transport, timeout or provider failure
        """
        sender = _validate_sender(sender_filter)
        if window_start >= window_end:
            raise ValueError(f"Empty window: {window_start.isoformat()} >= {window_end.isoformat()}")

        query = build_query(sender, window_start, window_end)
        logger.debug(f"Listing messages with query: {query}")
        return self._iter_messages(query, max_results)

    def _iter_messages(self, query: str, max_results: int) -> Iterator[RawEmail]:
        yielded = 0
        page_token: Optional[str] = None

        while yielded < max_results:
            response = self._list_page(query, page_token, min(self.page_size, max_results - yielded))

            for ref in response.get("messages", []):
                if yielded >= max_results:
                    return
                message = self._execute(
                    self.service.users().messages().get(userId="me", id=ref["id"], format="full"),
                    f"get message {ref['id']}"
                )
                yield parse_message(message)
                yielded += 1

            page_token = response.get("nextPageToken")
            if not page_token:
                return

    def _list_page(self, query: str, page_token: Optional[str], page_size: int) -> dict:
        params = {"userId": "me", "q": query, "maxResults": page_size}
        if page_token:
            params["pageToken"] = page_token
        return self._execute(self.service.users().messages().list(**params), "list messages")

    def fetch_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """Download one attachment's bytes; empty bytes when the provider returns no data."""
        response = self._execute(
            self.service.users().messages().attachments().get(
                userId="me", messageId=message_id, id=attachment_id
            ),
            f"get attachment {attachment_id}"
        )
        data = response.get("data")
        if not data:
            return b""
        return decode_base64url(data)

    def _execute(self, request, action: str) -> dict:
        """Run an API request, mapping failures onto the gateway error taxonomy."""
        try:
            return self._execute_with_retry(request)
        except RefreshError as e:
            raise GatewayUnauthenticated(f"Mailbox credential rejected during {action}: {e}") from e
        except TransportError as e:
            raise GatewayUnavailable(f"Token refresh transport failure during {action}: {e}") from e
        except HttpError as e:
            if e.resp.status == 401:
                raise GatewayUnauthenticated(f"Mailbox credential rejected during {action}: {e}") from e
            raise GatewayUnavailable(f"Provider error during {action}: HTTP {e.resp.status}") from e
        except GATEWAY_RETRYABLE_ERRORS as e:
            raise GatewayUnavailable(f"Transport failure during {action}: {e}") from e

    @retry_with_backoff(max_retries=3, retryable_exceptions=GATEWAY_RETRYABLE_ERRORS)
    def _execute_with_retry(self, request) -> dict:
        return request.execute()
