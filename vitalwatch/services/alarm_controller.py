"""
Alarm lifecycle management.

Key patterns:
- Protocol-based alarm sinks (audio device, console, test doubles)
- Start/stop decisions computed synchronously from tier transitions
- Side effects run in one background worker per room that converges the
  held resource to the latest desired state
- Async context manager guarantees every alarm is released on exit
"""

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Any, Protocol

import structlog
from rich.console import Console

from vitalwatch.domain.models import AlarmAction, Identifier, Tier
from vitalwatch.errors import AlarmResourceError

logger = structlog.get_logger(__name__)


class AlarmSink(Protocol):
    """
    The audible/visual alarm resource.

    Methods may be plain functions or coroutines. Either may raise; failures
    are contained by the controller.
    """

    def start_alarm(self, room_id: Identifier) -> Awaitable[None] | None: ...

    def stop_alarm(self, room_id: Identifier) -> Awaitable[None] | None: ...


class ConsoleAlarmSink:
    """Development sink that prints alarm transitions to the terminal."""

    def __init__(
        self, console: Console | None = None, sound_file: str = "sounds/alarm.mp3"
    ) -> None:
        self.console = console or Console()
        self.sound_file = sound_file

    def start_alarm(self, room_id: Identifier) -> None:
        self.console.print(
            f"[bold red]ALARM[/] room {room_id}: looping {self.sound_file}", highlight=False
        )

    def stop_alarm(self, room_id: Identifier) -> None:
        self.console.print(f"[green]alarm cleared[/] room {room_id}", highlight=False)


class AlarmController:
    """
    Owns the per-room "is an alarm sounding" flag.

    The flag is only mutated through `_start` / `_stop`, which are reached
    from `on_classification` and `release`. The resource actually held by the
    sink is tracked separately so a failed start can be retried on the next
    transition and a stop is never issued for a resource that was never held.
    """

    def __init__(self, sink: AlarmSink) -> None:
        self.sink = sink
        self.logger = logger.bind(component="alarm_controller")

        self._sounding: dict[Identifier, bool] = {}
        self._held: set[Identifier] = set()
        self._workers: dict[Identifier, asyncio.Task[None]] = {}
        self._closed = False

    def on_classification(
        self, prev_tier: Tier | None, next_tier: Tier, room_id: Identifier
    ) -> AlarmAction:
        """
        Decide and schedule the alarm side effect for a tier transition.

        Must be called from a running event loop. The returned action is the
        decision; the sink call happens in the room's background worker.
        """
        sounding = self._sounding.get(room_id, False)

        if next_tier.is_alarm_bearing and not sounding and self._closed:
            # Disposed controllers never acquire again
            action = AlarmAction.NONE
            self.logger.warning(
                "alarm_start_refused", room_id=room_id, next_tier=next_tier.value
            )
        elif next_tier.is_alarm_bearing and not sounding:
            action = AlarmAction.START
            self._start(room_id)
        elif not next_tier.is_alarm_bearing and sounding:
            action = AlarmAction.STOP
            self._stop(room_id)
        else:
            action = AlarmAction.NONE
            # A previous start may have failed; retry while still wanted
            if sounding and room_id not in self._held:
                self._schedule(room_id)

        if action is not AlarmAction.NONE:
            self.logger.info(
                "alarm_transition",
                room_id=room_id,
                action=action.value,
                prev_tier=prev_tier.value if prev_tier else None,
                next_tier=next_tier.value,
            )
        return action

    async def release(self, room_id: Identifier) -> AlarmAction:
        """
        Unconditionally stop a room's alarm (room teardown, feed loss).

        Waits until the sink has been told to stop.
        """
        action = AlarmAction.NONE
        if self._sounding.get(room_id, False):
            action = AlarmAction.STOP
            self._stop(room_id)
            self.logger.info("alarm_released", room_id=room_id)
        elif room_id in self._held:
            self._schedule(room_id)

        worker = self._workers.get(room_id)
        if worker is not None:
            await worker
        if not self._sounding.get(room_id, False):
            self._sounding.pop(room_id, None)
        return action

    async def release_all(self) -> None:
        """Stop every alarm this controller knows about."""
        rooms = set(self._sounding) | self._held | set(self._workers)
        for room_id in rooms:
            await self.release(room_id)

    async def drain(self) -> None:
        """Wait for all in-flight side effects to finish."""
        while True:
            pending = [w for w in self._workers.values() if not w.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    @asynccontextmanager
    async def session(self) -> AsyncIterator["AlarmController"]:
        """
        Scope the controller's lifetime.

        Every alarm started inside the block is stopped on exit, including
        exits by exception or cancellation. Once the block exits no new
        alarm is started.
        """
        self.logger.info("alarm_session_started")
        try:
            yield self
        finally:
            self._closed = True
            await self.release_all()
            self.logger.info("alarm_session_ended")

    @property
    def closed(self) -> bool:
        return self._closed

    def is_sounding(self, room_id: Identifier) -> bool:
        return self._sounding.get(room_id, False)

    @property
    def sounding_rooms(self) -> frozenset[Identifier]:
        return frozenset(room for room, on in self._sounding.items() if on)

    def is_held(self, room_id: Identifier) -> bool:
        """Whether the sink currently holds an alarm resource for the room."""
        return room_id in self._held

    def _start(self, room_id: Identifier) -> None:
        self._sounding[room_id] = True
        self._schedule(room_id)

    def _stop(self, room_id: Identifier) -> None:
        self._sounding[room_id] = False
        self._schedule(room_id)

    def _schedule(self, room_id: Identifier) -> None:
        worker = self._workers.get(room_id)
        if worker is None or worker.done():
            self._workers[room_id] = asyncio.get_running_loop().create_task(
                self._converge(room_id), name=f"alarm-{room_id}"
            )

    async def _converge(self, room_id: Identifier) -> None:
        """Drive the held resource toward the desired flag until they agree."""
        while True:
            wanted = self._sounding.get(room_id, False)
            held = room_id in self._held
            if wanted == held:
                return

            if wanted:
                try:
                    await self._call(self.sink.start_alarm, room_id)
                except Exception as e:
                    error = AlarmResourceError(room_id, "start", e)
                    # Flag stays set so the next transition retries
                    self.logger.error("alarm_start_failed", room_id=room_id, error=str(error))
                    return
                self._held.add(room_id)
            else:
                try:
                    await self._call(self.sink.stop_alarm, room_id)
                except Exception as e:
                    error = AlarmResourceError(room_id, "stop", e)
                    self.logger.error("alarm_stop_failed", room_id=room_id, error=str(error))
                # The handle is dropped either way so a later start re-acquires
                self._held.discard(room_id)

    @staticmethod
    async def _call(method: Any, room_id: Identifier) -> None:
        result = method(room_id)
        if inspect.isawaitable(result):
            await result
