"""
Neptune Streams HTTP client.

Reads change records after a (commitNum, opNum) position from the
``/propertygraph/stream`` or ``/sparql/stream`` endpoint. Positions are carried
between processes as the opaque resume token ``"<commitNum>:<opNum>"``.
"""

import logging
from collections import deque
from typing import Any, Deque, Dict, NamedTuple, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import NeptuneSettings
from ..converter.record_converter import event_id
from ..errors import ResumeTokenError, StreamSourceError

logger = logging.getLogger(__name__)

# Error codes meaning the requested position can no longer be served
EXPIRED_STREAM_CODES = frozenset({"ExpiredStreamException"})
# Error codes meaning there is nothing after the requested position yet
NO_RECORDS_CODES = frozenset({"StreamRecordsNotFoundException"})


class StreamPosition(NamedTuple):
    """Position of a record in the stream."""
    commit_num: int
    op_num: int

    def to_token(self) -> str:
        return f"{self.commit_num}:{self.op_num}"

    @classmethod
    def from_token(cls, token: str) -> "StreamPosition":
        try:
            commit_num, op_num = token.split(":")
            return cls(int(commit_num), int(op_num))
        except (AttributeError, ValueError) as e:
            raise ResumeTokenError(f"Invalid resume token: {token!r}") from e


class StreamRecord(NamedTuple):
    """One raw stream record with the resume token positioned after it."""
    data: Dict[str, Any]
    resume_token: str


class NeptuneStreamClient:
    """
    Connection to one Neptune stream endpoint.

    Thread Safety: NO. One client per worker attempt; close it when done.

    Example:
        >>> client = NeptuneStreamClient.from_settings(get_settings().neptune)
        >>> cursor = client.open_cursor(resume_token="12:3")
        >>> record = cursor.try_next()
    """

    def __init__(
        self,
        endpoint: str,
        stream_type: str = "propertygraph",
        fetch_limit: int = 1000,
        request_timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        self.endpoint = endpoint.rstrip("/")
        self.stream_type = stream_type
        self.fetch_limit = fetch_limit
        self.request_timeout = request_timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: NeptuneSettings) -> "NeptuneStreamClient":
        return cls(
            endpoint=settings.endpoint,
            stream_type=settings.stream_type,
            fetch_limit=settings.fetch_limit,
            request_timeout=settings.request_timeout
        )

    @property
    def stream_url(self) -> str:
        return f"{self.endpoint}/{self.stream_type}/stream"

    def fetch(self, position: Optional[StreamPosition]) -> Dict[str, Any]:
        """
        Fetch one page of records after ``position`` (from the oldest
        available record when None).

        Raises:
            ResumeTokenError: position is older than the stream retention
            StreamSourceError: endpoint rejected the request
            requests.RequestException: transport or server-side failure
        """
        params: Dict[str, Any] = {"limit": self.fetch_limit}
        if position is None:
            params["iteratorType"] = "TRIM_HORIZON"
        else:
            params.update({
                "iteratorType": "AFTER_SEQUENCE_NUMBER",
                "commitNum": position.commit_num,
                "opNum": position.op_num,
            })

        response = self._get(params)

        if response.status_code == 200:
            return response.json()

        code, message = self._error_details(response)
        if code in NO_RECORDS_CODES:
            return {"records": [], "totalRecords": 0}
        if code in EXPIRED_STREAM_CODES:
            raise ResumeTokenError(f"Stream position {position} expired: {message}")
        if response.status_code >= 500 or response.status_code == 429:
            response.raise_for_status()
        raise StreamSourceError(
            f"Stream request failed with {response.status_code}: {message}",
            status_code=response.status_code,
            code=code
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True
    )
    def _get(self, params: Dict[str, Any]) -> requests.Response:
        return self.session.get(self.stream_url, params=params, timeout=self.request_timeout)

    @staticmethod
    def _error_details(response: requests.Response):
        try:
            body = response.json()
        except ValueError:
            return None, response.text
        if not isinstance(body, dict):
            return None, response.text
        return body.get("code"), body.get("detailedMessage") or body.get("message") or response.text

    def open_cursor(self, resume_token: Optional[str] = None) -> "StreamCursor":
        position = StreamPosition.from_token(resume_token) if resume_token else None
        logger.info(
            f"Opening {self.stream_type} stream cursor",
            extra={"stream_url": self.stream_url, "has_resume_token": position is not None}
        )
        return StreamCursor(self, position)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "NeptuneStreamClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class StreamCursor:
    """Pages through the stream and hands out one record at a time."""

    def __init__(self, client: NeptuneStreamClient, position: Optional[StreamPosition]):
        self.client = client
        self.position = position
        self._pending: Deque[Dict[str, Any]] = deque()

    def try_next(self) -> Optional[StreamRecord]:
        """
        Next record, or None when the stream has nothing new right now.

        A record without a valid eventId raises RecordConversionError; it is
        dropped and the position stays at the previous record.
        """
        if not self._pending:
            page = self.client.fetch(self.position)
            self._pending.extend(page.get("records") or [])
            if not self._pending:
                return None

        record = self._pending.popleft()
        self.position = StreamPosition(*event_id(record))
        return StreamRecord(record, self.position.to_token())
