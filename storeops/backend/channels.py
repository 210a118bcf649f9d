"""Change notifications: named channels fed by a per-backend hub."""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from storeops.core.logging import get_logger

log = get_logger(__name__)

EVENTS = ("INSERT", "UPDATE", "DELETE")


@dataclass
class ChangeEvent:
    event: str  # INSERT | UPDATE | DELETE
    table: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @property
    def record(self) -> dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})


ChangeCallback = Callable[[ChangeEvent], Awaitable[None] | None]


@dataclass
class _Binding:
    event: str  # one of EVENTS or "*"
    table: str
    callback: ChangeCallback
    filters: list[tuple[str, str, Any]] = field(default_factory=list)

    def matches(self, change: ChangeEvent) -> bool:
        from storeops.backend.base import row_matches

        if self.table != change.table:
            return False
        if self.event != "*" and self.event != change.event:
            return False
        return row_matches(change.record, self.filters)


class Channel:
    def __init__(self, name: str, hub: "ChangeHub"):
        self.name = name
        self._hub = hub
        self._bindings: list[_Binding] = []
        self.subscribed = False

    def on(
        self,
        event: str,
        table: str,
        callback: ChangeCallback,
        filters: Iterable[tuple[str, str, Any]] = (),
    ) -> "Channel":
        if event != "*" and event not in EVENTS:
            raise ValueError(f"Unknown change event: {event}")
        self._bindings.append(_Binding(event=event, table=table, callback=callback, filters=list(filters)))
        return self

    @property
    def tables(self) -> set[str]:
        return {b.table for b in self._bindings}

    def subscribe(self) -> "Channel":
        self._hub.attach(self)
        self.subscribed = True
        return self

    def unsubscribe(self) -> None:
        self._hub.detach(self)
        self.subscribed = False

    async def dispatch(self, change: ChangeEvent) -> None:
        """Run matching callbacks. Delivery is best-effort: a failing callback is logged."""
        for binding in self._bindings:
            if not binding.matches(change):
                continue
            try:
                result = binding.callback(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("channel_callback_failed", channel=self.name, table=change.table, event=change.event)


class ChangeHub:
    """Fan-out of backend changes to subscribed channels."""

    def __init__(self, on_attach: Callable[[Channel], None] | None = None):
        self._channels: list[Channel] = []
        self._on_attach = on_attach

    def attach(self, channel: Channel) -> None:
        if channel not in self._channels:
            self._channels.append(channel)
            if self._on_attach:
                self._on_attach(channel)

    def detach(self, channel: Channel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    async def publish(self, change: ChangeEvent) -> None:
        for channel in list(self._channels):
            await channel.dispatch(change)
