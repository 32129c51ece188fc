"""Protocol definitions for stream supervision.

OutputSink decouples the supervisor from where encoder output and
lifecycle events end up.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._models import StreamEvent


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming encoder output lines and stream events.

    The protocol is async so implementations may do non-blocking I/O.
    """

    async def write_line(
        self,
        identity: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        """Write a line of encoder output.

        Args:
            identity: Stream identity of the encoder.
            pid: Encoder process ID.
            stream: Which output stream the line came from.
            line: The output line (without trailing newline).
        """
        ...

    async def write_event(self, identity: str, event: StreamEvent) -> None:
        """Write a stream lifecycle event.

        Args:
            identity: Stream identity that generated the event.
            event: The lifecycle event to record.
        """
        ...
