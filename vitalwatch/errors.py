"""
Error taxonomy for the vitals pipeline.

None of these cross the service boundary: the presentation layer only ever
sees a valid RoomView.
"""


class VitalwatchError(Exception):
    """Base class for pipeline errors."""


class InvalidEventError(VitalwatchError, ValueError):
    """Inbound feed event is malformed (missing room or patient id, bad shape)."""


class AlarmResourceError(VitalwatchError):
    """The audible/visual alarm resource failed to start or stop."""

    def __init__(self, room_id: object, operation: str, cause: BaseException | None = None) -> None:
        self.room_id = room_id
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Alarm {operation} failed for room {room_id}{detail}")


class FeedDisconnected(VitalwatchError, ConnectionError):
    """The vitals feed could not be reached."""


class ThresholdMissingWarning(UserWarning):
    """An occupied room's patient has no configured bounds; defaults apply."""
