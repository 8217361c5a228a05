# serialization.py
"""
JSON codec for the Session value. The engine never stores a session;
callers persist it (or post it back to the API) through these helpers.
"""
from typing import Any, Dict, List

from pydantic import TypeAdapter, ValidationError

from models import ClinicalEvent, Session, Transition

class SessionPayloadError(ValueError):
    """The payload does not decode into a valid Session."""

_SESSION = TypeAdapter(Session)
_EVENTS = TypeAdapter(List[ClinicalEvent])

def session_to_dict(session: Session) -> Dict[str, Any]:
    return _SESSION.dump_python(session, mode="json")

def session_from_dict(data: Dict[str, Any]) -> Session:
    try:
        return _SESSION.validate_python(data)
    except ValidationError as e:
        raise SessionPayloadError(f"Invalid session payload: {e.error_count()} error(s)\n{e}") from e

def session_to_json(session: Session) -> str:
    return _SESSION.dump_json(session).decode("utf-8")

def session_from_json(payload: str) -> Session:
    try:
        return _SESSION.validate_json(payload)
    except ValidationError as e:
        raise SessionPayloadError(f"Invalid session payload: {e.error_count()} error(s)\n{e}") from e

def transition_to_dict(transition: Transition) -> Dict[str, Any]:
    return {
        "session": session_to_dict(transition.session),
        "events": _EVENTS.dump_python(list(transition.events), mode="json"),
        "outcome": transition.outcome.value,
    }
