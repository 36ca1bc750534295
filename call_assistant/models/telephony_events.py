"""
Canonical telephony event models.

Every provider payload shape is normalized into one of the models below. The
``kind`` field is the discriminator of the ``TelephonyEvent`` union, so a
serialized event can be parsed back with ``TelephonyEventAdapter``.
Events are frozen once constructed.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EventKind(str, Enum):
    """Canonical event kind tags."""

    CALL_INCOMING = "call-incoming"
    CALL_INITIATED = "call-initiated"
    CALL_ANSWERED = "call-answered"
    CALL_COMPLETED = "call-completed"
    CALL_UPDATED = "call-updated"
    MISSED = "missed"
    AI_REPORT = "ai-report"
    QUEUE_ENTERED = "queue-entered"
    QUEUE_EXITED = "queue-exited"


class AIReport(BaseModel):
    """Provider generated call summary."""

    model_config = ConfigDict(frozen=True)

    summary: str = ""
    sentiment: str = ""
    action_items: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)


class BaseTelephonyEvent(BaseModel):
    """Fields shared by every canonical event."""

    model_config = ConfigDict(frozen=True)

    call_id: str = Field(..., description="Provider call identifier")
    session_id: Optional[str] = Field(None, description="Dialer session identifier, when known")
    agent_number: Optional[str] = Field(None, description="Number of the agent side of the call")
    customer_number: Optional[str] = Field(None, description="Number of the customer side of the call")
    contact_name: Optional[str] = None
    is_contact: bool = False
    agent_name: Optional[str] = None
    direction: Optional[Literal["inbound", "outbound"]] = None
    status: Optional[str] = None
    duration: Optional[int] = Field(None, description="Call duration in seconds")
    timestamp: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CallIncomingEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.CALL_INCOMING] = EventKind.CALL_INCOMING


class CallInitiatedEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.CALL_INITIATED] = EventKind.CALL_INITIATED


class CallAnsweredEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.CALL_ANSWERED] = EventKind.CALL_ANSWERED


class CallCompletedEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.CALL_COMPLETED] = EventKind.CALL_COMPLETED
    recording_url: Optional[str] = None


class CallUpdatedEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.CALL_UPDATED] = EventKind.CALL_UPDATED
    recording_url: Optional[str] = None
    notes: Optional[str] = None
    disposition_code: Optional[str] = None
    rating: Optional[int] = None


class MissedCallEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.MISSED] = EventKind.MISSED
    voicemail_url: Optional[str] = None
    missed_call_type: Optional[str] = None


class AIReportEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.AI_REPORT] = EventKind.AI_REPORT
    ai_report: AIReport = Field(default_factory=AIReport)


class QueueEnteredEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.QUEUE_ENTERED] = EventKind.QUEUE_ENTERED
    queue_name: Optional[str] = None


class QueueExitedEvent(BaseTelephonyEvent):
    kind: Literal[EventKind.QUEUE_EXITED] = EventKind.QUEUE_EXITED
    queue_name: Optional[str] = None


TelephonyEvent = Annotated[
    Union[
        CallIncomingEvent,
        CallInitiatedEvent,
        CallAnsweredEvent,
        CallCompletedEvent,
        CallUpdatedEvent,
        MissedCallEvent,
        AIReportEvent,
        QueueEnteredEvent,
        QueueExitedEvent,
    ],
    Field(discriminator="kind"),
]

TelephonyEventAdapter = TypeAdapter(TelephonyEvent)

EVENT_MODELS = {
    EventKind.CALL_INCOMING: CallIncomingEvent,
    EventKind.CALL_INITIATED: CallInitiatedEvent,
    EventKind.CALL_ANSWERED: CallAnsweredEvent,
    EventKind.CALL_COMPLETED: CallCompletedEvent,
    EventKind.CALL_UPDATED: CallUpdatedEvent,
    EventKind.MISSED: MissedCallEvent,
    EventKind.AI_REPORT: AIReportEvent,
    EventKind.QUEUE_ENTERED: QueueEnteredEvent,
    EventKind.QUEUE_EXITED: QueueExitedEvent,
}
