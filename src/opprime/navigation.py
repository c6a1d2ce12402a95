from __future__ import annotations

from dataclasses import dataclass

from .catalog import Classification
from .session import IntakeSession
from .validation import StepValidator


def total_steps(classification: Classification | None) -> int:
    # Major: type, impact, details, master checklist
    return 4 if classification is Classification.MAJOR else 3


def is_last_step(step: int, classification: Classification | None) -> bool:
    return step >= total_steps(classification)


@dataclass(frozen=True, slots=True)
class NavigationOutcome:
    moved: bool
    step: int
    reason: str


@dataclass(frozen=True, slots=True)
class StepState:
    step: int
    is_current: bool
    is_complete: bool


class WorkflowNavigator:
    """Step state machine over ``1..total_steps``.

    Disallowed moves are no-ops that report why; they never raise.
    """

    def __init__(self, validator: StepValidator):
        self.validator = validator

    def total_steps(self, session: IntakeSession) -> int:
        return total_steps(session.classification)

    def is_last_step(self, session: IntakeSession) -> bool:
        return is_last_step(session.current_step, session.classification)

    def can_advance(self, session: IntakeSession) -> bool:
        if session.current_step >= total_steps(session.classification):
            return False
        return self.validator.validate_step(session.current_step, session.classification, session).valid

    def can_retreat(self, session: IntakeSession) -> bool:
        return session.current_step > 1

    def advance(self, session: IntakeSession) -> NavigationOutcome:
        if session.current_step >= total_steps(session.classification):
            return NavigationOutcome(moved=False, step=session.current_step, reason="already_on_last_step")
        if not self.can_advance(session):
            return NavigationOutcome(moved=False, step=session.current_step, reason="current_step_invalid")
        return self._move(session, session.current_step + 1, "advance")

    def retreat(self, session: IntakeSession) -> NavigationOutcome:
        if not self.can_retreat(session):
            return NavigationOutcome(moved=False, step=session.current_step, reason="already_on_first_step")
        return self._move(session, session.current_step - 1, "retreat")

    def jump_to(self, session: IntakeSession, step: int) -> NavigationOutcome:
        current = session.current_step
        if step == current:
            return NavigationOutcome(moved=False, step=current, reason="already_on_step")
        if step < 1 or step > total_steps(session.classification):
            return NavigationOutcome(moved=False, step=current, reason="step_out_of_range")
        if step > current + 1:
            return NavigationOutcome(moved=False, step=current, reason="cannot_skip_unvalidated_steps")
        if step == current + 1:
            return self.advance(session)
        return self._move(session, step, "jump")

    def change_classification(
        self,
        session: IntakeSession,
        classification: Classification,
    ) -> NavigationOutcome:
        old = session.classification
        if old is classification:
            return NavigationOutcome(moved=False, step=session.current_step, reason="classification_unchanged")

        session.classification = classification
        session.log_update(
            "classification",
            old.value if old else None,
            classification.value,
            "classification_switch",
        )

        if old is Classification.MAJOR and session.business_impact:
            session.log_update("business_impact", session.business_impact, "", "major_only_field_discarded")
            session.business_impact = ""

        clamped = min(session.current_step, total_steps(classification))
        if clamped != session.current_step:
            return self._move(session, clamped, "classification_clamp")
        return NavigationOutcome(moved=False, step=session.current_step, reason="classification_switch")

    def step_states(self, session: IntakeSession) -> list[StepState]:
        states: list[StepState] = []
        for step in range(1, total_steps(session.classification) + 1):
            result = self.validator.validate_step(step, session.classification, session)
            states.append(
                StepState(
                    step=step,
                    is_current=step == session.current_step,
                    is_complete=step < session.current_step and result.valid,
                )
            )
        return states

    def _move(self, session: IntakeSession, step: int, reason: str) -> NavigationOutcome:
        old = session.current_step
        session.current_step = step
        session.log_update("current_step", old, step, reason)
        return NavigationOutcome(moved=True, step=step, reason=reason)
