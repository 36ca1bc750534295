"""
Models module for data structures used by the call assistant.

Key components:
- telephony_events: The canonical ``TelephonyEvent`` tagged union that every
  provider webhook payload is normalized into.
- session: ``SessionState``, ``AudioChunk`` and the ``CallSession`` record owned
  by a session controller.
- grading: ``GradeResult`` with its six 1-10 sub-scores.
- message_schemas: Pydantic models for the overlay session socket protocol.

Usage examples:
```python
from call_assistant.models.telephony_events import CallAnsweredEvent, EventKind

event = CallAnsweredEvent(call_id="c-1", agent_number="+15550100")
assert event.kind is EventKind.CALL_ANSWERED
```
"""

from call_assistant.models.grading import GradeResult, GradeScores
from call_assistant.models.message_schemas import (
    AudioChunkMessage,
    IncomingMessage,
    OutgoingMessage,
    SessionEndedResponse,
    SessionErrorResponse,
    SessionStartedResponse,
    SessionStartMessage,
    SessionStopMessage,
    TelephonyEventMessage,
    TranscriptUpdateMessage,
)
from call_assistant.models.session import AudioChunk, CallSession, SessionState
from call_assistant.models.telephony_events import (
    AIReport,
    AIReportEvent,
    CallAnsweredEvent,
    CallCompletedEvent,
    CallIncomingEvent,
    CallInitiatedEvent,
    CallUpdatedEvent,
    EventKind,
    MissedCallEvent,
    QueueEnteredEvent,
    QueueExitedEvent,
    TelephonyEvent,
    TelephonyEventAdapter,
)
