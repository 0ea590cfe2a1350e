"""INTAKE → DIAGNOSE transition policy.

Advance when ANY of:
  1. service and symptom are known AND the model asked no further questions
  2. at least `signal_threshold` distinct signals are known (default 4)
  3. the user has sent at least `user_turn_threshold` messages (default 3)

The policy favours bounded conversations over completeness. Rules 2 and 3 can
fire while clarifying questions are still pending; those questions are
dropped when the stage leaves INTAKE (flagged for product review).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TransitionRule(str, Enum):
    MINIMUM_SIGNALS_NO_QUESTIONS = "minimum_signals_no_questions"
    SIGNAL_THRESHOLD = "signal_threshold"
    USER_TURN_THRESHOLD = "user_turn_threshold"


@dataclass(frozen=True)
class TransitionDecision:
    advance: bool
    rule: Optional[TransitionRule] = None

    @classmethod
    def hold(cls) -> "TransitionDecision":
        return cls(advance=False)


@dataclass(frozen=True)
class TransitionPolicy:
    signal_threshold: int = 4
    user_turn_threshold: int = 3

    def evaluate(
        self,
        signal_count: int,
        has_minimum_signals: bool,
        open_question_count: int,
        user_turn_count: int,
    ) -> TransitionDecision:
        if has_minimum_signals and open_question_count == 0:
            return TransitionDecision(True, TransitionRule.MINIMUM_SIGNALS_NO_QUESTIONS)
        if signal_count >= self.signal_threshold:
            return TransitionDecision(True, TransitionRule.SIGNAL_THRESHOLD)
        if user_turn_count >= self.user_turn_threshold:
            return TransitionDecision(True, TransitionRule.USER_TURN_THRESHOLD)
        return TransitionDecision.hold()
