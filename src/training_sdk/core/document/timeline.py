"""Per-element timeline and quiz records.

Timeline values are seconds measured from the moment the slide starts
playing. Players advance in 0.1 s ticks.
"""

from typing import Optional
from pydantic import Field

from .base import DocumentModel
from .vocabulary import EntranceEffect, ExitEffect, QuestionType

MAX_INCORRECT_ANSWERS = 3


class Timeline(DocumentModel):
    """When an element appears, pauses playback, and leaves."""
    start_time: float = 0.0
    end_time: Optional[float] = None  # None = stays until the slide ends
    pause_at: Optional[float] = None
    show_for_duration: Optional[float] = None
    animation_in: float = 0.0  # entrance animation length
    animation_out: float = 0.0  # exit animation length
    entrance_effect: EntranceEffect = "None"
    exit_effect: ExitEffect = "None"

    def effective_end(self) -> Optional[float]:
        if self.end_time is not None:
            return self.end_time
        if self.show_for_duration is not None:
            return self.start_time + self.show_for_duration
        return None

    def is_visible_at(self, t: float) -> bool:
        if t < self.start_time:
            return False
        end = self.effective_end()
        return end is None or t <= end


class Quiz(DocumentModel):
    """A question attached to an element with interaction type Quiz."""
    question_type: QuestionType = "Multiple choice"
    question_text: str = ""
    correct_answer: str = ""
    incorrect_answers: list[str] = Field(default_factory=list)
    include_feedback: bool = False
    correct_feedback: str = ""
    incorrect_feedback: str = ""
    points: int = 1
    attempts: int = 1

    # Passing policy
    provide_correct_answer: bool = False
    required_to_pass: bool = False

    def choices(self) -> list[str]:
        return [self.correct_answer, *self.incorrect_answers[:MAX_INCORRECT_ANSWERS]]

    def is_correct(self, answer: str) -> bool:
        return answer.strip().casefold() == self.correct_answer.strip().casefold()
