"""
Wire protocol for the signaling relay.

Every frame is a text WebSocket message holding one JSON object with at
least a ``type`` field. Inbound frames are validated into pydantic models;
outbound frames are plain dicts built by the helpers at the bottom.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ProtocolError


class MessageType(str, Enum):
    """Inbound message types (client -> relay)."""
    REGISTER_PC = "register_pc"
    REQUEST_DISCOVERY = "request_discovery"
    CONNECT_REQUEST = "connect_request"
    CONNECTION_ACCEPTED = "connection_accepted"
    CONNECTION_DECLINED = "connection_declined"
    UNPAIR = "unpair"
    SIGNAL = "signal"
    HEARTBEAT = "heartbeat"
    PING = "ping"
    JOIN = "join"
    LEAVE = "leave"


# ============ Inbound Models ============

class InboundMessage(BaseModel):
    """Base for every inbound frame. Unknown extra fields are kept."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str


class RegisterPcMessage(InboundMessage):
    """A source announcing itself with a display identity."""
    identity: Optional[str] = None

    @field_validator("identity", mode="before")
    @classmethod
    def _identity_to_str(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class TargetedMessage(InboundMessage):
    """A frame addressed to another connection by identifier."""
    target_id: str = Field(..., alias="targetId", min_length=1)


class SignalMessage(InboundMessage):
    """Opaque negotiation payload; ``targetId`` is optional in room-code mode."""
    target_id: Optional[str] = Field(default=None, alias="targetId")
    data: Any = None


class JoinMessage(InboundMessage):
    """Room-code join, or a source registration when ``room`` is absent."""
    room: Optional[str] = None
    role: Optional[str] = None
    identity: Optional[str] = None

    @field_validator("room", "role", "identity", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Optional[str]:
        # Room codes are numeric; clients may send them as JSON numbers.
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        raise ValueError("expected a string")


_MODELS: Dict[str, Type[InboundMessage]] = {
    MessageType.REGISTER_PC.value: RegisterPcMessage,
    MessageType.CONNECT_REQUEST.value: TargetedMessage,
    MessageType.CONNECTION_ACCEPTED.value: TargetedMessage,
    MessageType.CONNECTION_DECLINED.value: TargetedMessage,
    MessageType.SIGNAL.value: SignalMessage,
    MessageType.JOIN.value: JoinMessage,
}


def parse_message(raw: str) -> InboundMessage:
    """
    Parse one inbound text frame.

    Raises:
        ProtocolError: body is not JSON, not an object, has no string
            ``type``, or fails validation for its type.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from None

    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ProtocolError("Message has no type")

    model = _MODELS.get(msg_type, InboundMessage)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {msg_type} message: {e.error_count()} error(s)") from None


# ============ Outbound Messages ============

def server_info(ip: str, hostname: str, port: int) -> dict:
    return {"type": "server_info", "ip": ip, "hostname": hostname, "port": port}


def discovery_update(pcs: List[dict]) -> dict:
    return {"type": "discovery_update", "pcs": pcs}


def connection_request(from_id: str) -> dict:
    return {"type": "connection_request", "fromId": from_id}


def connection_declined(from_id: str) -> dict:
    return {"type": "connection_declined", "fromId": from_id}


def signal(data: Any, from_id: str) -> dict:
    return {"type": "signal", "data": data, "fromId": from_id}


def partner_disconnected() -> dict:
    return {"type": "partner_disconnected"}


def ready() -> dict:
    return {"type": "ready"}


def pong() -> dict:
    return {"type": "pong"}


def heartbeat_ack() -> dict:
    return {"type": "heartbeat_ack"}


def error(message: str) -> dict:
    return {"type": "error", "message": message}
