"""Checkpoint sources: the HTTP checkpoint gateway and an in-memory source for tests."""

import base64
import logging
from typing import Any, Iterable, Protocol, Union

import httpx

from services.indexer.src.indexer.domain.models import (
    Checkpoint,
    Transaction,
    TransactionEvent,
)
from services.indexer.src.indexer.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class TransientSourceError(Exception):
    """Retryable failure fetching from the source (timeout, reset, 5xx)."""


class _NotYetAvailable:
    def __repr__(self) -> str:
        return "NOT_YET_AVAILABLE"


NOT_YET_AVAILABLE = _NotYetAvailable()

FetchResult = Union[Checkpoint, _NotYetAvailable]


class CheckpointSource(Protocol):
    def fetch(self, sequence_number: int) -> FetchResult:
        """Return the checkpoint, or NOT_YET_AVAILABLE.

        Raises:
            TransientSourceError: On retryable failures.
        """
        ...

    def fetch_latest_sequence(self) -> int:
        ...


def checkpoint_from_json(data: dict[str, Any]) -> Checkpoint:
    """Build a Checkpoint from the gateway's JSON; event payloads are base64."""
    transactions = []
    for tx in data.get("transactions", []):
        events = tuple(
            TransactionEvent(
                package_id=e["package_id"],
                module=e["module"],
                event_type=e["event_type"],
                payload=base64.b64decode(e["payload"]),
            )
            for e in tx.get("events", [])
        )
        transactions.append(Transaction(digest=tx["digest"], sender=tx["sender"], events=events))

    return Checkpoint(
        sequence_number=int(data["sequence_number"]),
        timestamp_ms=int(data["timestamp_ms"]),
        transactions=tuple(transactions),
        received_at=utc_now(),
    )


class HttpCheckpointSource:
    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _get(self, path: str) -> httpx.Response:
        try:
            response = self._client.get(f"{self.base_url}{path}")
        except httpx.TransportError as e:
            raise TransientSourceError(f"GET {path} failed: {e}") from e
        if response.status_code >= 500:
            raise TransientSourceError(f"GET {path} returned {response.status_code}")
        return response

    def fetch(self, sequence_number: int) -> FetchResult:
        response = self._get(f"/checkpoints/{sequence_number}")
        if response.status_code == 404:
            return NOT_YET_AVAILABLE
        response.raise_for_status()
        return checkpoint_from_json(response.json())

    def fetch_latest_sequence(self) -> int:
        response = self._get("/checkpoints/latest")
        response.raise_for_status()
        return int(response.json()["sequence_number"])

    def close(self) -> None:
        self._client.close()


class InMemoryCheckpointSource:
    """Serves preloaded checkpoints; can inject transient failures per sequence."""

    def __init__(self, checkpoints: Iterable[Checkpoint] = ()):
        self._served: dict[int, Checkpoint] = {}
        self._failures: dict[int, int] = {}
        self.fetch_calls: list[int] = []
        for checkpoint in checkpoints:
            self.add(checkpoint)

    def add(self, checkpoint: Checkpoint, serve_at: int | None = None) -> None:
        """Serve `checkpoint` when `serve_at` (default: its own sequence) is requested."""
        at = checkpoint.sequence_number if serve_at is None else serve_at
        self._served[at] = checkpoint

    def fail(self, sequence_number: int, times: int) -> None:
        self._failures[sequence_number] = times

    def fetch(self, sequence_number: int) -> FetchResult:
        self.fetch_calls.append(sequence_number)
        remaining = self._failures.get(sequence_number, 0)
        if remaining:
            self._failures[sequence_number] = remaining - 1
            raise TransientSourceError(f"injected failure for {sequence_number}")
        checkpoint = self._served.get(sequence_number)
        return checkpoint if checkpoint is not None else NOT_YET_AVAILABLE

    def fetch_latest_sequence(self) -> int:
        if not self._served:
            return -1
        return max(c.sequence_number for c in self._served.values())
