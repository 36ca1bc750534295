"""
Normalization of provider webhook payloads into canonical telephony events.

The dialer provider delivers at least two payload shapes:

- a nested shape ``{"type": "call_updated", "data": {"call_sid": ..., "justcall_number": ...}}``
- a flat shape ``{"event_type": "call.answered", "call_id": ..., "agent_number": ...}``

Each shape is described by a pydantic schema. Schemas are tried in a fixed
priority order and the first one that validates structurally wins. Payloads
that match no schema, or whose type string is not a known event kind, are
dropped and ``None`` is returned. Loosely typed fields are coerced where
possible; a payload that still does not fit is dropped, never raised.

Call lifecycle events without a provider status get the canonical one
(``ringing``, ``answered``, ``completed``, ``missed``). AI report events are
only emitted when a report is attached.
"""

import logging
import re
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from call_assistant.config.constants import LOGGER_NAME
from call_assistant.errors import NormalizationWarning
from call_assistant.models.telephony_events import (
    EVENT_MODELS,
    AIReport,
    EventKind,
    TelephonyEvent,
)

logger = logging.getLogger(LOGGER_NAME)

# Provider type strings, after lower-casing and turning "." and "-" into "_"
PROVIDER_EVENT_TYPES: Dict[str, EventKind] = {
    "call_incoming": EventKind.CALL_INCOMING,
    "incoming_call": EventKind.CALL_INCOMING,
    "call_initiated": EventKind.CALL_INITIATED,
    "call_answered": EventKind.CALL_ANSWERED,
    "call": EventKind.CALL_COMPLETED,
    "call_completed": EventKind.CALL_COMPLETED,
    "call_updated": EventKind.CALL_UPDATED,
    "call_missed": EventKind.MISSED,
    "missed": EventKind.MISSED,
    "missed_call": EventKind.MISSED,
    "call_ai_report": EventKind.AI_REPORT,
    "ai_report": EventKind.AI_REPORT,
    "queue_entered": EventKind.QUEUE_ENTERED,
    "call_queue_entered": EventKind.QUEUE_ENTERED,
    "queue_exited": EventKind.QUEUE_EXITED,
    "call_queue_exited": EventKind.QUEUE_EXITED,
}

TRUE_FLAGS = {"1", "true", "yes", "y", "on"}
INBOUND_DIRECTIONS = {"inbound", "incoming", "in", "1"}
OUTBOUND_DIRECTIONS = {"outbound", "outgoing", "out", "2"}
HMS_PATTERN = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{1,2})$")

# Status reported for these kinds when the provider leaves it out
CANONICAL_STATUS: Dict[EventKind, str] = {
    EventKind.CALL_INITIATED: "ringing",
    EventKind.CALL_ANSWERED: "answered",
    EventKind.CALL_COMPLETED: "completed",
    EventKind.MISSED: "missed",
}


def map_event_type(provider_type: Optional[str]) -> Optional[EventKind]:
    """Map a provider type string onto a canonical event kind, or None."""
    if not provider_type:
        return None
    key = re.sub(r"[.\-\s]+", "_", provider_type.strip().lower())
    return PROVIDER_EVENT_TYPES.get(key)


def coerce_flag(value: Any) -> bool:
    """Turn ``"1"``/``1``/``"true"`` style provider flags into booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUE_FLAGS


def coerce_direction(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in INBOUND_DIRECTIONS:
        return "inbound"
    if text in OUTBOUND_DIRECTIONS:
        return "outbound"
    return None


def coerce_duration(value: Any) -> Optional[int]:
    """Accept seconds as int/float/str or an ``[H:]MM:SS`` string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    match = HMS_PATTERN.match(text)
    if match:
        hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
        return hours * 3600 + minutes * 60 + seconds
    return None


def coerce_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValueError("expected a scalar identifier")
    text = str(value).strip()
    return text or None


def coerce_str_list(value: Any) -> List[str]:
    """Accept a list of scalars or a single scalar."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value if item is not None]
    if isinstance(value, dict):
        raise ValueError("expected a list of strings")
    return [str(value)]


def coerce_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def coerce_optional_dict(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def coerce_optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


ProviderId = Annotated[str, BeforeValidator(lambda v: coerce_optional_str(v) or "")]
OptionalText = Annotated[Optional[str], BeforeValidator(coerce_optional_str)]
ProviderFlag = Annotated[bool, BeforeValidator(coerce_flag)]
ProviderDirection = Annotated[Optional[str], BeforeValidator(coerce_direction)]
ProviderDuration = Annotated[Optional[int], BeforeValidator(coerce_duration)]
ProviderInt = Annotated[Optional[int], BeforeValidator(coerce_optional_int)]
ProviderMetadata = Annotated[Dict[str, Any], BeforeValidator(coerce_dict)]


class ProviderAIReport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: OptionalText = None
    sentiment: OptionalText = None
    action_items: Annotated[List[str], BeforeValidator(coerce_str_list)] = Field(default_factory=list)
    topics: Annotated[List[str], BeforeValidator(coerce_str_list)] = Field(default_factory=list)

    def canonical(self) -> AIReport:
        return AIReport(
            summary=self.summary or "",
            sentiment=self.sentiment or "",
            action_items=self.action_items,
            topics=self.topics,
        )


ProviderReport = Annotated[Optional[ProviderAIReport], BeforeValidator(coerce_optional_dict)]


class ProviderPayload(BaseModel):
    """Common interface of every known payload schema."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def provider_type(self) -> str:
        raise NotImplementedError

    def canonical_fields(self) -> Dict[str, Any]:
        raise NotImplementedError


class NestedCallData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    call_sid: ProviderId = Field(..., validation_alias=AliasChoices("call_sid", "call_id", "id"))
    session_id: OptionalText = None
    justcall_number: OptionalText = None
    contact_number: OptionalText = None
    contact_name: OptionalText = None
    contact_email: OptionalText = None
    is_contact: ProviderFlag = False
    agent_name: OptionalText = None
    agent_id: ProviderInt = None
    direction: ProviderDirection = None
    call_status: OptionalText = None
    call_duration: OptionalText = None
    call_duration_sec: ProviderDuration = None
    recording_url: OptionalText = None
    recording_mp3: OptionalText = None
    voicemail_url: OptionalText = None
    missed_call_type: OptionalText = None
    queue_name: OptionalText = None
    notes: OptionalText = None
    disposition_code: OptionalText = None
    rating: ProviderInt = None
    ai_report: ProviderReport = None
    metadata: ProviderMetadata = Field(default_factory=dict)
    timestamp: OptionalText = Field(None, validation_alias=AliasChoices("timestamp", "datetime", "call_date"))


class NestedProviderPayload(ProviderPayload):
    """``{"type": ..., "data": {...}}`` shape."""

    type: str
    data: NestedCallData

    def provider_type(self) -> str:
        return self.type

    def canonical_fields(self) -> Dict[str, Any]:
        data = self.data
        duration = data.call_duration_sec
        if duration is None:
            duration = coerce_duration(data.call_duration)
        fields = {
            "call_id": data.call_sid,
            "session_id": data.session_id,
            "agent_number": data.justcall_number,
            "customer_number": data.contact_number,
            "contact_name": data.contact_name,
            "is_contact": data.is_contact,
            "agent_name": data.agent_name,
            "direction": data.direction,
            "status": data.call_status,
            "duration": duration,
            "timestamp": data.timestamp,
            "metadata": data.metadata,
            "recording_url": data.recording_url or data.recording_mp3,
            "voicemail_url": data.voicemail_url,
            "missed_call_type": data.missed_call_type,
            "queue_name": data.queue_name,
            "notes": data.notes,
            "disposition_code": data.disposition_code,
            "rating": data.rating,
        }
        if data.ai_report is not None:
            fields["ai_report"] = data.ai_report.canonical()
        return fields


class FlatProviderPayload(ProviderPayload):
    """``{"event_type": ..., "call_id": ...}`` shape."""

    event_type: str
    call_id: ProviderId
    session_id: OptionalText = None
    agent_number: OptionalText = None
    customer_number: OptionalText = None
    contact_name: OptionalText = None
    is_contact: ProviderFlag = False
    agent_name: OptionalText = None
    direction: ProviderDirection = None
    status: OptionalText = None
    duration: ProviderDuration = None
    recording_url: OptionalText = None
    voicemail_url: OptionalText = None
    missed_call_type: OptionalText = None
    queue_name: OptionalText = None
    notes: OptionalText = None
    disposition_code: OptionalText = None
    rating: ProviderInt = None
    ai_report: ProviderReport = None
    metadata: ProviderMetadata = Field(default_factory=dict)
    timestamp: OptionalText = None

    def provider_type(self) -> str:
        return self.event_type

    def canonical_fields(self) -> Dict[str, Any]:
        fields = self.model_dump(exclude={"event_type", "ai_report"})
        if self.ai_report is not None:
            fields["ai_report"] = self.ai_report.canonical()
        return fields


# Fixed matching priority
PAYLOAD_SCHEMAS: List[Type[ProviderPayload]] = [
    NestedProviderPayload,
    FlatProviderPayload,
]


def match_schema(raw_payload: Any) -> Optional[ProviderPayload]:
    """Return the first schema that structurally matches ``raw_payload``."""
    if not isinstance(raw_payload, dict):
        return None
    for schema in PAYLOAD_SCHEMAS:
        try:
            return schema.model_validate(raw_payload)
        except (ValidationError, TypeError, ValueError):
            continue
    return None


def normalize(raw_payload: Any) -> Optional[TelephonyEvent]:
    """
    Normalize a provider payload into a canonical event.

    Args:
        raw_payload: Parsed JSON body of the webhook

    Returns:
        The canonical event, or None when the payload shape or event type
        is not recognized, or when an AI report event carries no report
    """
    parsed = match_schema(raw_payload)
    if parsed is None:
        logger.warning(str(NormalizationWarning("Dropping webhook payload with unrecognized shape")))
        return None

    provider_type = parsed.provider_type()
    kind = map_event_type(provider_type)
    if kind is None:
        logger.info(f"Ignoring unknown webhook event type: {provider_type}")
        return None

    fields = parsed.canonical_fields()
    if not fields.get("call_id"):
        logger.warning(f"Dropping {provider_type} payload without a call identifier")
        return None

    if kind is EventKind.AI_REPORT and fields.get("ai_report") is None:
        logger.info(f"Ignoring {provider_type} payload without a report for call {fields['call_id']}")
        return None

    if not fields.get("status") and kind in CANONICAL_STATUS:
        fields["status"] = CANONICAL_STATUS[kind]

    try:
        event = EVENT_MODELS[kind](**fields)
    except ValidationError as e:
        logger.warning(f"Dropping {provider_type} payload that does not fit {kind.value}: {e}")
        return None
    logger.debug(f"Normalized {type(parsed).__name__} payload into {kind.value} for call {event.call_id}")
    return event
