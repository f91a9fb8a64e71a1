"""Port for delivering new-artifact notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from imagewatch.domain.model import NotificationPayload
    from imagewatch.domain.reconciliation.deadline import Deadline


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, payload: NotificationPayload, *, deadline: Deadline) -> bool:
        """Deliver ``payload`` once and report whether the receiver accepted it.

        Raise ``NotificationError`` when the payload could not be delivered at
        all; return ``False`` when it was delivered but the receiver refused it.
        """
        ...
