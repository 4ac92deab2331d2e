"""
Comment thread consumer.

WHAT: Keeps a local copy of a proposal's comment thread in sync with the
portal API by polling, posts comments optimistically, and uploads
attachments.

WHY: The thread is read incrementally, never replaced wholesale:
1. A `since` watermark fetches only what is new
2. Incoming comments are deduplicated by id before they are appended
3. The view keeps its scroll position when the user has scrolled away

Polling pauses while the view is hidden and never overlaps itself.

HOW: PortalClient wraps the HTTP API with httpx. CommentPoller owns the
local list, the watermark and one asyncio timer task. AttachmentUploader
runs the authorize / upload / register sequence.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from client_portal.core.config import settings
from client_portal.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NetworkError,
    NotImplementedFeatureError,
    ResourceNotFoundError,
    ValidationError,
)
from client_portal.services.optimistic import OptimisticCommand

logger = logging.getLogger(__name__)


# ============================================================================
# Wire client
# ============================================================================


_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: ResourceNotFoundError,
    409: ConflictError,
    501: NotImplementedFeatureError,
    503: NetworkError,
}


def parse_timestamp(value: Any) -> datetime:
    """Parse an API timestamp into a naive UTC datetime."""
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


class PortalClient:
    """
    Minimal async client for the comment and attachment endpoints.

    Attributes:
        base_url: Portal API root, e.g. https://portal.example.com
        token: Bearer token of the local user
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout or settings.EXTERNAL_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, authenticated: bool = True) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if authenticated else {}
        return httpx.AsyncClient(
            base_url=self.base_url if authenticated else "",
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Call the API and unwrap the JSON body.

        Raises:
            NetworkError: Timeout or connection failure (retryable)
            AppException subclass matching the error status
        """
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(message="Portal request timed out", path=path) from e
        except httpx.RequestError as e:
            raise NetworkError(message="Could not reach the portal", path=path) from e

        if response.status_code >= 400:
            raise self._error_from(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _error_from(self, response: httpx.Response) -> AppException:
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") if isinstance(body, dict) else None
        details = (body.get("details") or {}) if isinstance(body, dict) else {}
        error_class = _STATUS_ERRORS.get(response.status_code, ExternalServiceError)
        if error_class is ValidationError:
            return ValidationError(message=message, errors=details.get("errors"))
        return error_class(message=message)

    async def fetch_comments(self, proposal_id: int, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"proposalId": proposal_id}
        if since is not None:
            params["since"] = since.isoformat()
        return await self._request("GET", "/api/comments", params=params)

    async def post_comment(self, proposal_id: int, content: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/api/comments", json={"proposalId": proposal_id, "content": content}
        )

    async def presign_upload(
        self, proposal_id: int, file_name: str, file_type: str, file_size: int
    ) -> Dict[str, str]:
        return await self._request(
            "POST",
            "/api/attachments/presign",
            json={
                "proposalId": proposal_id,
                "fileName": file_name,
                "fileType": file_type,
                "fileSize": file_size,
            },
        )

    async def register_attachment(
        self,
        comment_id: int,
        file_name: str,
        file_type: str,
        file_size: int,
        storage_key: str,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/attachments",
            json={
                "commentId": comment_id,
                "fileName": file_name,
                "fileType": file_type,
                "fileSize": file_size,
                "storageKey": storage_key,
            },
        )

    async def put_bytes(self, upload_url: str, data: bytes, content_type: str) -> None:
        """
        Upload bytes to a presigned URL.

        Raises:
            NetworkError: Timeout or connection failure
            ExternalServiceError: Storage refused the upload
        """
        try:
            async with self._client(authenticated=False) as client:
                response = await client.put(
                    upload_url, content=data, headers={"Content-Type": content_type}
                )
        except httpx.TimeoutException as e:
            raise NetworkError(message="Upload timed out") from e
        except httpx.RequestError as e:
            raise NetworkError(message="Could not reach file storage") from e
        if response.status_code >= 300:
            raise ExternalServiceError(
                message="File storage rejected the upload", storage_status=response.status_code
            )


# ============================================================================
# Local thread state
# ============================================================================


@dataclass
class ThreadComment:
    """A comment as held by the consumer."""

    id: int
    user_id: int
    user_name: str
    content: str
    created_at: datetime
    is_edited: bool = False
    pending: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ThreadComment":
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_name=data["userName"],
            content=data["content"],
            created_at=parse_timestamp(data["createdAt"]),
            is_edited=data.get("isEdited", False),
        )


@dataclass
class MergeResult:
    """What a merge added to the local thread."""

    new_comments: List[ThreadComment] = field(default_factory=list)
    watermark: Optional[datetime] = None

    @property
    def changed(self) -> bool:
        return bool(self.new_comments)


@dataclass(frozen=True)
class ScrollState:
    """
    Scroll position captured before a merge.

    Attributes:
        offset: Distance scrolled away from the top of the thread
        threshold: Offsets up to this count as "at the top"
    """

    offset: float = 0.0
    threshold: float = 40.0

    @property
    def at_top(self) -> bool:
        return self.offset <= self.threshold

    def restore_offset(self, merge: MergeResult) -> Optional[float]:
        """
        Offset to restore after rendering a merge.

        Returns:
            The captured offset if the user had scrolled away and new
            comments arrived; None when the view should follow new items
        """
        if merge.changed and not self.at_top:
            return self.offset
        return None


def merge_comments(
    local: List[ThreadComment],
    incoming: List[ThreadComment],
    watermark: Optional[datetime],
) -> MergeResult:
    """
    Append comments not already held locally.

    WHAT: Deduplicates by id (incoming duplicates included), appends the
    rest in (created_at, id) order, and advances the watermark to the
    newest timestamp seen.

    Args:
        local: Local thread, mutated in place
        incoming: Comments returned by a fetch
        watermark: Current watermark

    Returns:
        MergeResult with the appended comments and the new watermark
    """
    known = {comment.id for comment in local if not comment.pending}
    added = []
    for comment in sorted(incoming, key=lambda c: (c.created_at, c.id)):
        if comment.id in known:
            continue
        known.add(comment.id)
        added.append(comment)

    local.extend(added)
    newest = max((c.created_at for c in incoming), default=None)
    if newest is not None and (watermark is None or newest > watermark):
        watermark = newest
    return MergeResult(new_comments=added, watermark=watermark)


# ============================================================================
# Poller
# ============================================================================


class CommentPoller:
    """
    Polling consumer for one proposal's thread.

    Attributes:
        comments: Local thread in display order
        last_polled_at: Watermark, timestamp of the newest comment seen
        visible: Whether the view is in the foreground
    """

    def __init__(
        self,
        client: PortalClient,
        proposal_id: int,
        local_user_id: int,
        local_user_name: str = "",
        interval: Optional[float] = None,
        on_new_comment: Optional[Callable[[ThreadComment], Any]] = None,
        on_merge: Optional[Callable[[MergeResult, Optional[float]], Any]] = None,
        scroll_offset: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            client: API client
            proposal_id: Thread to follow
            local_user_id: Comments by this user do not raise notifications
            local_user_name: Name shown on optimistic entries
            interval: Seconds between polls (defaults to settings)
            on_new_comment: Called for each new comment by someone else
            on_merge: Called after a merge that added comments, with the
                offset to restore (None to follow new items)
            scroll_offset: Returns the view's current scroll offset
        """
        self.client = client
        self.proposal_id = proposal_id
        self.local_user_id = local_user_id
        self.local_user_name = local_user_name
        self.interval = interval if interval is not None else settings.COMMENT_POLL_INTERVAL_SECONDS
        self.on_new_comment = on_new_comment
        self.on_merge = on_merge
        self.scroll_offset = scroll_offset

        self.comments: List[ThreadComment] = []
        self.last_polled_at: Optional[datetime] = None
        self.visible = True

        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._temp_ids = itertools.count(-1, -1)
        self._stopped = False

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # -- polling --------------------------------------------------------------

    async def poll_once(self) -> MergeResult:
        """
        Fetch comments newer than the watermark and merge them.

        A poll requested while another is running is skipped.

        Returns:
            MergeResult (empty when skipped)
        """
        if self._lock.locked():
            logger.debug(f"Poll for proposal {self.proposal_id} skipped, previous still running")
            return MergeResult(watermark=self.last_polled_at)

        async with self._lock:
            scroll = ScrollState(offset=self.scroll_offset() if self.scroll_offset else 0.0)
            self._inflight = asyncio.ensure_future(
                self.client.fetch_comments(self.proposal_id, since=self.last_polled_at)
            )
            try:
                raw = await self._inflight
            finally:
                self._inflight = None

            incoming = [ThreadComment.from_api(item) for item in raw or []]
            merge = merge_comments(self.comments, incoming, self.last_polled_at)
            self.last_polled_at = merge.watermark

            for comment in merge.new_comments:
                if comment.user_id != self.local_user_id and self.on_new_comment:
                    self.on_new_comment(comment)
            if merge.changed and self.on_merge:
                self.on_merge(merge, scroll.restore_offset(merge))
            return merge

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.poll_once()
            except (NetworkError, ExternalServiceError) as e:
                logger.warning(f"Comment poll for proposal {self.proposal_id} failed: {e.message}")
            except AppException as e:
                logger.error(f"Comment poll for proposal {self.proposal_id} rejected: {e.message}")

    def _arm(self) -> None:
        if not self.timer_active:
            self._timer = asyncio.get_running_loop().create_task(self._run())

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def start(self) -> None:
        """Load the thread and start polling (if visible)."""
        self._stopped = False
        await self.poll_once()
        if self.visible:
            self._arm()

    async def set_visible(self, visible: bool) -> None:
        """
        Track view visibility.

        Hidden: the timer is cancelled. Visible again: poll immediately
        and re-arm exactly one timer.
        """
        was_visible = self.visible
        self.visible = visible
        if self._stopped:
            return
        if not visible:
            self._disarm()
            return
        if not was_visible or not self.timer_active:
            self._arm()
            await self.poll_once()

    async def stop(self) -> None:
        """Cancel the timer and any in-flight request."""
        self._stopped = True
        self._disarm()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

    # -- posting --------------------------------------------------------------

    def _discard(self, pending: ThreadComment) -> None:
        if pending in self.comments:
            self.comments.remove(pending)

    def _replace_pending(self, pending: ThreadComment, saved: ThreadComment) -> None:
        if pending in self.comments:
            self.comments.remove(pending)
        if all(c.id != saved.id for c in self.comments):
            self.comments.append(saved)
            self.comments.sort(key=lambda c: (c.pending, c.created_at, c.id))

    async def post_comment(self, content: str) -> ThreadComment:
        """
        Post a comment, showing it locally before the server confirms.

        Raises:
            Whatever the API raised; the optimistic entry is removed first
        """
        pending = ThreadComment(
            id=next(self._temp_ids),
            user_id=self.local_user_id,
            user_name=self.local_user_name,
            content=content.strip(),
            created_at=datetime.utcnow(),
            pending=True,
        )

        async def execute() -> ThreadComment:
            return ThreadComment.from_api(await self.client.post_comment(self.proposal_id, content))

        command: OptimisticCommand[ThreadComment] = OptimisticCommand(
            apply=lambda: self.comments.append(pending),
            execute=execute,
            compensate=lambda: self._discard(pending),
            reconcile=lambda saved: self._replace_pending(pending, saved),
            name="post_comment",
        )
        return await command.run()


# ============================================================================
# Attachment upload
# ============================================================================


class AttachmentUploader:
    """
    Three step attachment upload: authorize, upload bytes, register.

    The steps are not atomic. A failure after the bytes are stored leaves
    an orphaned object; it is logged with its key for manual cleanup and
    not retried.
    """

    def __init__(self, client: PortalClient):
        self.client = client

    async def upload(
        self,
        proposal_id: int,
        comment_id: int,
        file_name: str,
        file_type: str,
        data: bytes,
    ) -> Dict[str, Any]:
        """
        Upload a file and attach it to a comment.

        Returns:
            Registered attachment as returned by the API
        """
        grant = await self.client.presign_upload(proposal_id, file_name, file_type, len(data))
        key = grant["key"]
        await self.client.put_bytes(grant["uploadUrl"], data, file_type)
        try:
            return await self.client.register_attachment(
                comment_id, file_name, file_type, len(data), key
            )
        except Exception:
            logger.warning(
                f"orphaned upload: {key} stored but not registered on comment {comment_id}",
                extra={"storage_key": key, "comment_id": comment_id},
            )
            raise

