"""
Change notification channel.

Workflows publish a ChangeEvent after a mutation is committed; views
that show derived figures (balances, receivable/payable totals, MRR)
subscribe and reload. The notifier is owned by the application shell
and handed to the workflows, so nothing here is global.
"""

import inspect
import itertools
from typing import Awaitable, Callable, Optional, Union

import structlog

from finsaas.models.events import ChangeEvent, ChangeKind


logger = structlog.get_logger(__name__)

Subscriber = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """Publish/subscribe registry for committed changes."""

    def __init__(self):
        # token -> (kind, callback); dicts keep registration order
        self._subscribers: dict[int, tuple[Optional[ChangeKind], Subscriber]] = {}
        self._tokens = itertools.count()

    def subscribe(
        self,
        callback: Subscriber,
        kind: Optional[ChangeKind] = None,
    ) -> Callable[[], None]:
        """
        Register a callback (sync or async).

        Subscribing the same callback twice gives two independent
        subscriptions; each returned function removes only its own.

        Args:
            callback: Called with each ChangeEvent
            kind: Only deliver events of this kind (None = all events)

        Returns:
            A function that removes the subscription
        """
        token = next(self._tokens)
        self._subscribers[token] = (kind, callback)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    async def publish(self, event: ChangeEvent) -> None:
        """
        Deliver an event to every matching subscriber, in registration order.

        The change is already committed when this runs, so a failing
        subscriber is logged and the remaining subscribers still run.
        """
        for kind, callback in list(self._subscribers.values()):
            if kind is not None and kind != event.kind:
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "change_subscriber_failed",
                    kind=event.kind.value,
                    entity_id=str(event.entity_id),
                )
