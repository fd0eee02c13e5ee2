"""
Step timeline: the ordered steps of a manual and their illustration bindings.

Binding state per step:

    UNBOUND --request frames--> PENDING --candidates / user pick--> BOUND
       ^                                                              |
       +------------------ any timestamp change ---------------------+

A bound frame is only ever valid for the timestamp it was extracted at, so
every timestamp change drops the binding, whatever state the step was in.
"""
import logging
from typing import Iterable, List, Optional, Sequence

from manualizer.core.exceptions import (
    InvalidTimestampError,
    StaleBindingError,
    StepNotFoundException,
    ValidationException,
)
from manualizer.models.domain import BindingState, Frame, ManualStep
from manualizer.utils.timestamp import Timestamp, coerce_timestamp, format_timestamp, shift_timestamp

logger = logging.getLogger(__name__)


class ManualTimeline:
    """Ordered manual steps with binding invalidation rules."""

    def __init__(self, steps: Optional[Iterable[ManualStep]] = None):
        self.steps: List[ManualStep] = list(steps or [])

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def get_step(self, step_id: str) -> ManualStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise StepNotFoundException(step_id)

    def index_of(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        raise StepNotFoundException(step_id)

    # Timestamp mutations

    def on_timestamp_changed(self, step_id: str, new_timestamp) -> ManualStep:
        """
        Set a step's timestamp and drop its binding.

        The binding is cleared unconditionally, including when the new value
        equals the old one.

        Args:
            step_id: Step to update
            new_timestamp: Timestamp or MM:SS text

        Returns:
            The updated step

        Raises:
            InvalidTimestampError: Text is not a valid timestamp; the step is left untouched
            StepNotFoundException: Unknown step id
        """
        step = self.get_step(step_id)
        timestamp = coerce_timestamp(new_timestamp)
        previous = step.time

        step.timestamp = timestamp
        step.bound_frame = None
        step.binding = BindingState.UNBOUND

        logger.debug(f"Step {step_id} moved {previous or 'unset'} -> {format_timestamp(timestamp)}, binding cleared")
        return step

    def nudge(self, step_id: str, delta_seconds: int) -> ManualStep:
        """Move a step's timestamp by +/- seconds (clamped at 00:00)."""
        step = self.get_step(step_id)
        if step.timestamp is None:
            raise InvalidTimestampError("", reason="step has no timestamp to adjust")
        return self.on_timestamp_changed(step_id, shift_timestamp(step.timestamp, delta_seconds))

    # Binding transitions

    def mark_pending(self, step_id: str, timestamp: Timestamp) -> ManualStep:
        """Record that frames were requested for the step's current timestamp."""
        step = self.get_step(step_id)
        if step.timestamp == timestamp and step.binding == BindingState.UNBOUND:
            step.binding = BindingState.PENDING
        return step

    def apply_candidates(self, step_id: str, timestamp: Timestamp, frames: Sequence[Frame]) -> ManualStep:
        """
        Auto-bind the first useful candidate once an extraction returns.

        Only applies while the step still sits at ``timestamp`` and has no
        binding; a user's choice is never overridden. The offset-0 frame is
        preferred, otherwise the first frame in order.
        """
        step = self.get_step(step_id)
        if step.timestamp != timestamp:
            logger.debug(f"Ignoring candidates for step {step_id}: timestamp moved on")
            return step
        if step.binding == BindingState.BOUND:
            return step

        usable = [frame for frame in frames if frame.timestamp == timestamp]
        if not usable:
            step.binding = BindingState.UNBOUND
            return step

        chosen = next((frame for frame in usable if frame.offset == 0), usable[0])
        step.bound_frame = chosen.url
        step.binding = BindingState.BOUND
        logger.debug(f"Auto-bound step {step_id} to {chosen.url}")
        return step

    def extraction_failed(self, step_id: str, timestamp: Timestamp) -> ManualStep:
        """Return a pending step to UNBOUND after its extraction failed."""
        step = self.get_step(step_id)
        if step.timestamp == timestamp and step.binding == BindingState.PENDING:
            step.binding = BindingState.UNBOUND
        return step

    def bind_frame(self, step_id: str, frame: Frame) -> ManualStep:
        """
        Bind a frame chosen by the user.

        Raises:
            StaleBindingError: The frame was extracted for a different timestamp
        """
        step = self.get_step(step_id)
        if step.timestamp is None or frame.timestamp != step.timestamp:
            raise StaleBindingError(step_id, step.time, format_timestamp(frame.timestamp))
        step.bound_frame = frame.url
        step.binding = BindingState.BOUND
        return step

    def unbind(self, step_id: str) -> ManualStep:
        step = self.get_step(step_id)
        step.bound_frame = None
        step.binding = BindingState.UNBOUND
        return step

    # Structure edits; none of these touch another step's binding

    def insert_step(
        self,
        index: Optional[int] = None,
        headline: str = "",
        description: str = "",
        timestamp=None
    ) -> ManualStep:
        """Insert a new unbound step (appended when index is None)."""
        step = ManualStep(
            headline=headline,
            description=description,
            timestamp=coerce_timestamp(timestamp) if timestamp else None,
        )
        if index is None:
            self.steps.append(step)
        else:
            self.steps.insert(max(0, min(index, len(self.steps))), step)
        return step

    def update_text(
        self,
        step_id: str,
        headline: Optional[str] = None,
        description: Optional[str] = None
    ) -> ManualStep:
        step = self.get_step(step_id)
        if headline is not None:
            step.headline = headline
        if description is not None:
            step.description = description
        return step

    def move_step(self, step_id: str, new_index: int) -> ManualStep:
        if not 0 <= new_index < len(self.steps):
            raise ValidationException(f"index {new_index} out of range 0..{len(self.steps) - 1}")
        step = self.steps.pop(self.index_of(step_id))
        self.steps.insert(new_index, step)
        return step

    def remove_step(self, step_id: str) -> ManualStep:
        return self.steps.pop(self.index_of(step_id))

    def append_step(self, headline: str = "", description: str = "", timestamp=None) -> ManualStep:
        return self.insert_step(None, headline=headline, description=description, timestamp=timestamp)
