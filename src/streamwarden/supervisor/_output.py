"""Output sink implementations for stream supervision."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, final

from ._models import StreamEventType

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._models import StreamEvent


@final
class StreamLogSink:
    """Writes encoder output and events to the stream's own log.

    Encoder stderr carries ffmpeg's warnings and errors, so it is logged at
    warning level; stdout is logged at info. Encoder exits are logged at
    warning, every other event at info.
    """

    __slots__ = ("_logger",)

    def __init__(self, logger: FilteringBoundLogger) -> None:
        self._logger = logger

    async def write_line(
        self,
        identity: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        if not line.strip():
            return
        log = self._logger.warning if stream == "stderr" else self._logger.info
        log("encoder_output", identity=identity, pid=pid, stream=stream, line=line)

    async def write_event(self, identity: str, event: StreamEvent) -> None:
        fields: dict[str, object] = {
            "identity": identity,
            "kind": event.event_type.value,
            "at": event.timestamp,
        }
        if event.pid is not None:
            fields["encoder_pid"] = event.pid
        if event.exit_code is not None:
            fields["exit_code"] = event.exit_code
        if event.run_time is not None:
            fields["run_time"] = round(event.run_time, 3)
        if event.message:
            fields["message"] = event.message

        if event.event_type is StreamEventType.EXITED:
            self._logger.warning("stream_event", **fields)
        else:
            self._logger.info("stream_event", **fields)
