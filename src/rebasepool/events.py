"""
rebasepool/events.py

Pool signals.

Events raised inside an entry point are buffered by the pool and only handed
to the EventLog once the call commits; a reverted call emits nothing.

- EventLog: in-memory history plus subscriber callbacks
- EventBroadcaster: forwards committed events to a PubSub publisher
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional

from .config import DEFAULT_MAX_PENDING_EVENTS, EVENT_TOPIC_PREFIX

logger = logging.getLogger("rebasepool.events")


# Event names
REWARD_ADDED = "RewardAdded"
STAKED = "Staked"
WITHDRAWN = "Withdrawn"
REWARD_PAID = "RewardPaid"
REWARD_DISTRIBUTION_SET = "RewardDistributionSet"
OWNERSHIP_TRANSFERRED = "OwnershipTransferred"

EVENT_NAMES = (
    REWARD_ADDED,
    STAKED,
    WITHDRAWN,
    REWARD_PAID,
    REWARD_DISTRIBUTION_SET,
    OWNERSHIP_TRANSFERRED,
)


@dataclass
class PoolEvent:
    """A committed pool signal."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[int] = None  # None: stamped with wall-clock time
    sequence: int = 0               # assigned by EventLog on commit

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = int(time.time())

    @property
    def account(self) -> Optional[str]:
        return self.args.get("account")

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> "PoolEvent":
        return cls(
            name=data.get("name", ""),
            args=dict(data.get("args", {})),
            timestamp=data.get("timestamp"),
            sequence=int(data.get("sequence", 0)),
        )


class EventLog:
    """
    History of committed pool events with subscriber callbacks.

    Usage:
        log = EventLog()
        log.subscribe(lambda event: print(event.name, event.args))
        pool = StakingPool(..., events=log)
        log.filter(name="Staked", account="alice")
    """

    def __init__(self, max_events: int = 10000):
        self.max_events = max_events
        self._events: List[PoolEvent] = []
        self._callbacks: List[Callable[[PoolEvent], None]] = []
        self._sequence = 0

    def subscribe(self, callback: Callable[[PoolEvent], None]) -> None:
        self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable[[PoolEvent], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def commit(self, events: List[PoolEvent]) -> None:
        """Record events from a committed call and dispatch them."""
        for event in events:
            self._sequence += 1
            event.sequence = self._sequence
            self._events.append(event)

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Event callback error ({event.name}): {e}")

        if len(self._events) > self.max_events:
            self._events = self._events[-self.max_events:]

    def filter(self, name: Optional[str] = None, account: Optional[str] = None) -> List[PoolEvent]:
        return [
            e for e in self._events
            if (name is None or e.name == name)
            and (account is None or e.account == account)
        ]

    def last(self, name: Optional[str] = None) -> Optional[PoolEvent]:
        matches = self.filter(name=name)
        return matches[-1] if matches else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))


class EventBroadcaster:
    """
    Publishes committed events to a PubSub network.

    The publisher is anything with `async publish(topic, data)`, such as a
    libp2p PubSub node. Subscribe broadcaster.enqueue to an EventLog;
    call flush() from the async side to publish what has been queued.

    At most max_pending events wait for the publisher; beyond that the
    oldest queued event is dropped and counted in `dropped`.
    """

    def __init__(
        self,
        publisher: Any,
        topic_prefix: str = EVENT_TOPIC_PREFIX,
        max_pending: int = DEFAULT_MAX_PENDING_EVENTS,
    ):
        self.publisher = publisher
        self.topic_prefix = topic_prefix
        self._pending: deque = deque(maxlen=max_pending)
        self.published = 0
        self.dropped = 0

    def enqueue(self, event: PoolEvent) -> None:
        if len(self._pending) == self._pending.maxlen:
            oldest = self._pending[0]
            self.dropped += 1
            logger.warning(f"Broadcast queue full, dropping {oldest.name} #{oldest.sequence}")
        self._pending.append(event)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def topic_for(self, event: PoolEvent) -> str:
        return f"{self.topic_prefix}{event.name}"

    async def flush(self) -> int:
        """Publish queued events in order. Returns how many were sent."""
        sent = 0
        while self._pending:
            event = self._pending[0]
            try:
                await self.publisher.publish(self.topic_for(event), event.to_json())
            except Exception as e:
                logger.warning(f"Failed to publish {event.name} #{event.sequence}: {e}")
                break
            if self._pending and self._pending[0] is event:
                self._pending.popleft()
            sent += 1

        self.published += sent
        return sent
