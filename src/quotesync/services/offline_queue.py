"""Durable queue of mutations attempted while offline.

Actions are persisted before they are accepted and replayed in FIFO order
once connectivity returns. Each action moves through::

    queued -> attempting -> succeeded          (removed)
                         -> retrying            (queued, retry_count + 1)
                         -> permanently failed  (removed, surfaced)

An action leaves the queue only when it succeeds or its ``retry_count``
reaches ``max_retries``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.invalidation import InvalidationDispatcher, related_ids_from
from quotesync.services.storage import DurableStorage
from quotesync.services.transport.client import Transport
from quotesync.services.transport.models import RequestOptions
from quotesync.shared.constants import HTTPMethods, QueueConfig, StorageKeys
from quotesync.shared.errors import (
    DomainError,
    ErrorCode,
    ErrorContext,
    NetworkError,
    QuoteSyncError,
)
from quotesync.shared.logging import log_operation_error

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ActionType(str, Enum):
    """Kind of queued mutation."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: ActionType | str) -> ActionType:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as e:
            raise DomainError(
                ErrorCode.UNKNOWN_ACTION_TYPE,
                f"Unknown offline action type: {value}",
                ErrorContext(operation="enqueue", additional_data={"action_type": str(value)}),
                e,
            ) from e


class OfflineAction(BaseModel):
    """A mutation waiting for connectivity."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ActionType
    resource: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: int = Field(default_factory=_now_ms)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=QueueConfig.MAX_RETRIES, gt=0)

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


@dataclass
class DrainReport:
    """Outcome of one drain pass."""

    succeeded: list[str] = field(default_factory=list)
    retrying: list[str] = field(default_factory=list)
    held: list[str] = field(default_factory=list)
    failed: list[OfflineAction] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.retrying) + len(self.failed)


PermanentFailureListener = Callable[[OfflineAction, BaseException], None]


class OfflineQueue:
    """FIFO of offline actions mirrored to durable storage.

    Args:
        storage: Durable storage holding the queue
        transport: Transport used for replay
        dispatcher: Invalidation dispatcher run after each replayed action
        connectivity: Monitor whose offline-to-online transition triggers a drain
        max_retries: Failed replays after which an action is dropped
        storage_key: Storage key of the queue
        auto_drain: Drain automatically when connectivity returns
    """

    def __init__(
        self,
        storage: DurableStorage,
        transport: Transport,
        dispatcher: InvalidationDispatcher,
        connectivity: ConnectivityMonitor | None = None,
        max_retries: int = QueueConfig.MAX_RETRIES,
        storage_key: str = StorageKeys.OFFLINE_QUEUE,
        auto_drain: bool = True,
    ) -> None:
        self._storage = storage
        self._transport = transport
        self._dispatcher = dispatcher
        self._storage_key = storage_key
        self.max_retries = max_retries
        self._actions: list[OfflineAction] = []
        self._draining = False
        self._listeners: list[PermanentFailureListener] = []
        self._drain_task: asyncio.Task[DrainReport] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        if connectivity is not None and auto_drain:
            self._unsubscribe = connectivity.subscribe(self._on_connectivity_change)

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def actions(self) -> tuple[OfflineAction, ...]:
        return tuple(self._actions)

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def drain_task(self) -> asyncio.Task[DrainReport] | None:
        """Task of the last automatic drain, if one was started."""
        return self._drain_task

    def load(self) -> int:
        """Replace the in-memory queue with the persisted one.

        Entries that no longer validate are dropped with a warning.

        Returns:
            Number of loaded actions
        """
        raw = self._storage.get(self._storage_key)
        actions: list[OfflineAction] = []
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            logger.warning("Persisted offline queue is not a list; resetting it")
            raw = []
        for item in raw:
            try:
                actions.append(OfflineAction.model_validate(item))
            except PydanticValidationError as e:
                logger.warning("Dropping invalid persisted offline action: %s", e)
        self._actions = actions
        logger.debug("Loaded %d offline actions", len(actions))
        return len(actions)

    def enqueue(
        self,
        action_type: ActionType | str,
        resource: str,
        payload: dict[str, Any] | None = None,
    ) -> OfflineAction:
        """Persist a new action, then append it to the queue.

        Raises:
            DomainError: For an unknown action type, or an update/delete
                without ``payload["id"]``
            InfrastructureError: If persisting fails (nothing is queued)
        """
        action = OfflineAction(
            type=ActionType.parse(action_type),
            resource=resource,
            payload=dict(payload or {}),
            max_retries=self.max_retries,
        )
        if action.type != ActionType.CREATE:
            self._require_id(action)
        updated = [*self._actions, action]
        self._persist(updated)
        self._actions = updated
        logger.info("Queued %s %s for replay when online", action.type.value, action.resource)
        return action

    def clear(self) -> None:
        """Drop every queued action."""
        self._persist([])
        self._actions = []
        logger.info("Offline queue cleared")

    def on_permanent_failure(self, listener: PermanentFailureListener) -> Callable[[], None]:
        """Register a listener for dropped actions; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def drain(self) -> DrainReport:
        """Replay queued actions in order.

        A drain already in progress makes this call a no-op reporting
        ``skipped``. A retryable failure keeps the action and holds back
        later actions of the same resource until the next drain.
        """
        if self._draining:
            return DrainReport(skipped=True)

        self._draining = True
        report = DrainReport()
        blocked: set[str] = set()
        try:
            for action in list(self._actions):
                if action.resource in blocked:
                    report.held.append(action.id)
                    continue

                try:
                    method, path, body = self._request_for(action)
                    await self._transport.request(method, path, body, RequestOptions(retry=False))
                except NetworkError as e:
                    action.retry_count += 1
                    if action.exhausted:
                        self._drop(action, e, report)
                    else:
                        blocked.add(action.resource)
                        report.retrying.append(action.id)
                        self._persist(self._actions)
                        logger.info(
                            "Offline action %s failed (%d/%d), will retry",
                            action.id,
                            action.retry_count,
                            action.max_retries,
                        )
                    continue
                except QuoteSyncError as e:
                    action.retry_count = action.max_retries
                    self._drop(action, e, report)
                    continue

                self._remove(action)
                report.succeeded.append(action.id)
                self._dispatcher.on_mutation_settled(
                    f"{action.resource.lower()}.{action.type.value.lower()}",
                    resource_id=action.payload.get("id"),
                    related_ids=related_ids_from(action.payload),
                )
        finally:
            self._draining = False

        if report.processed:
            logger.info(
                "Offline queue drained: %d succeeded, %d retrying, %d failed",
                len(report.succeeded),
                len(report.retrying),
                len(report.failed),
            )
        return report

    def _request_for(self, action: OfflineAction) -> tuple[str, str, Any]:
        if action.type == ActionType.CREATE:
            return HTTPMethods.POST, f"/{action.resource}", action.payload
        resource_id = self._require_id(action)
        if action.type == ActionType.UPDATE:
            return HTTPMethods.PUT, f"/{action.resource}/{resource_id}", action.payload
        return HTTPMethods.DELETE, f"/{action.resource}/{resource_id}", None

    @staticmethod
    def _require_id(action: OfflineAction) -> str:
        resource_id = action.payload.get("id")
        if resource_id is None or resource_id == "":
            raise DomainError(
                ErrorCode.MISSING_RESOURCE_ID,
                f"{action.type.value} of {action.resource} needs payload['id']",
                ErrorContext(
                    operation="offline_replay",
                    resource=action.resource,
                    additional_data={"action_type": action.type.value},
                ),
            )
        return str(resource_id)

    def _drop(self, action: OfflineAction, error: QuoteSyncError, report: DrainReport) -> None:
        self._remove(action)
        report.failed.append(action)
        log_operation_error(
            logger,
            error,
            operation="offline_replay",
            context={"action_id": action.id, "retry_count": action.retry_count},
            level=logging.WARNING,
        )
        for listener in list(self._listeners):
            listener(action, error)

    def _remove(self, action: OfflineAction) -> None:
        remaining = [a for a in self._actions if a.id != action.id]
        self._persist(remaining)
        self._actions = remaining

    def _persist(self, actions: list[OfflineAction]) -> None:
        if actions:
            self._storage.set(
                self._storage_key,
                [a.model_dump(mode="json") for a in actions],
            )
        else:
            self._storage.remove(self._storage_key)

    def _on_connectivity_change(self, online: bool) -> None:
        if not online or not self._actions:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Back online without a running loop; drain deferred")
            return
        logger.info("Back online, replaying %d offline actions", len(self._actions))
        self._drain_task = loop.create_task(self.drain())


__all__ = [
    "ActionType",
    "DrainReport",
    "OfflineAction",
    "OfflineQueue",
    "PermanentFailureListener",
]
