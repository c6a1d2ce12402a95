from __future__ import annotations

from .navigation import total_steps
from .session import IntakeSession


def build_session_trace(session: IntakeSession, *, routing_decision: str) -> dict:
    """Build trace strictly from session change-log artifacts."""
    return {
        "session_id": session.session_id,
        "classification": session.classification.value if session.classification else None,
        "current_step": session.current_step,
        "total_steps": total_steps(session.classification),
        "priority": session.priority.value if session.priority else None,
        "variables_used": list(session.variables_used),
        "value_updates": list(session.value_updates),
        "routing_decision": routing_decision,
    }
