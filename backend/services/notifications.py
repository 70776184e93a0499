"""In-process hooks for slot and waitlist events.

Delivery channels (email, Telegram, ...) subscribe handlers here. ``publish``
never lets a handler failure escape into the request that emitted the event.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)

SLOT_BOOKED = 'slot_booked'
SLOT_CANCELLED = 'slot_cancelled'
WAITLIST_REQUEST = 'waitlist_request'


@dataclass
class Event:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for container in (data, data['payload']):
            for key, value in container.items():
                if isinstance(value, datetime):
                    container[key] = value.isoformat()
        return data


Handler = Callable[[Event], None]

_handlers: dict[str, list[Handler]] = defaultdict(list)


def subscribe(event_name: str, handler: Handler) -> None:
    if handler not in _handlers[event_name]:
        _handlers[event_name].append(handler)


def unsubscribe(event_name: str, handler: Handler) -> None:
    if handler in _handlers[event_name]:
        _handlers[event_name].remove(handler)


def clear_handlers() -> None:
    _handlers.clear()


def publish(event_name: str, **payload: Any) -> Event:
    event = Event(name=event_name, payload=payload)
    for handler in list(_handlers.get(event_name, ())):
        try:
            handler(event)
        except Exception:
            logger.exception('Notification handler %r failed for %s', handler, event_name)
    return event


def log_event(event: Event) -> None:
    logger.info('Event %s: %s', event.name, event.to_dict()['payload'])


def register_default_handlers() -> None:
    for event_name in (SLOT_BOOKED, SLOT_CANCELLED, WAITLIST_REQUEST):
        subscribe(event_name, log_event)
