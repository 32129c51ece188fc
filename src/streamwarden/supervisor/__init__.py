"""Stream supervision: one encoder per capture device, kept alive.

Key Components:
    - StreamSpec: What a supervisor streams
    - StreamState / StreamPhase: Runtime state machine
    - RestartPolicy: Short-run aware restart delays and the restart cap
    - ProcessTerminator: Graceful-then-forced termination cascade
    - OutputSink / StreamLogSink: Encoder output and event consumers
    - StreamSupervisor: The supervision loop
"""

from ._backoff import BackoffAction, BackoffDecision, RestartPolicy
from ._encoder import build_encoder_command, codec_args, encoder_url_prefix
from ._models import (
    StopReason,
    StreamEvent,
    StreamEventType,
    StreamPhase,
    StreamSpec,
    StreamState,
    stream_spec_for,
)
from ._output import StreamLogSink
from ._protocol import OutputSink
from ._supervisor import StreamSupervisor
from ._termination import ProcessTerminator, TerminationResult

__all__ = [
    "BackoffAction",
    "BackoffDecision",
    "OutputSink",
    "ProcessTerminator",
    "RestartPolicy",
    "StopReason",
    "StreamEvent",
    "StreamEventType",
    "StreamLogSink",
    "StreamPhase",
    "StreamSpec",
    "StreamState",
    "StreamSupervisor",
    "TerminationResult",
    "build_encoder_command",
    "codec_args",
    "encoder_url_prefix",
    "stream_spec_for",
]
