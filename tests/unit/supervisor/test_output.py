import anyio

from streamwarden.supervisor import StreamEvent, StreamEventType, StreamLogSink
from tests.conftest import logged_calls, make_logger


class TestStreamLogSink:
    def test_stderr_logged_as_warning(self) -> None:
        logger = make_logger()
        sink = StreamLogSink(logger)

        async def main() -> None:
            await sink.write_line("mic", 42, "stderr", "buffer underrun")
            await sink.write_line("mic", 42, "stdout", "frame=1")
            await sink.write_line("mic", 42, "stdout", "   ")

        anyio.run(main)

        calls = logged_calls(logger)
        assert [(method, d["event"]) for method, d in calls] == [
            ("warning", "encoder_output"),
            ("info", "encoder_output"),
        ]
        assert calls[0][1]["line"] == "buffer underrun"
        assert calls[0][1]["pid"] == 42

    def test_events(self) -> None:
        logger = make_logger()
        sink = StreamLogSink(logger)
        exited = StreamEvent(
            identity="mic",
            event_type=StreamEventType.EXITED,
            timestamp="2026-01-01T00:00:00Z",
            pid=42,
            exit_code=1,
            run_time=3.14159,
        )
        started = StreamEvent(
            identity="mic",
            event_type=StreamEventType.STARTED,
            timestamp="2026-01-01T00:00:00Z",
            message="ffmpeg ...",
        )

        async def main() -> None:
            await sink.write_event("mic", exited)
            await sink.write_event("mic", started)

        anyio.run(main)

        calls = logged_calls(logger)
        assert calls[0][0] == "warning"
        assert calls[0][1]["kind"] == "exited"
        assert calls[0][1]["exit_code"] == 1
        assert calls[0][1]["run_time"] == 3.142
        assert calls[1][0] == "info"
        assert calls[1][1]["message"] == "ffmpeg ..."
        assert "exit_code" not in calls[1][1]
