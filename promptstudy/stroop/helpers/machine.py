"""
The Stroop session state machine.

    IDLE -> AWAITING_RESPONSE -> FEEDBACK -> INTER_TRIAL_INTERVAL -> AWAITING_RESPONSE ...
                                                                 \\-> COMPLETE

``paused`` is a modifier, not a state: it can be asserted in
AWAITING_RESPONSE, FEEDBACK and INTER_TRIAL_INTERVAL and freezes every
countdown until ``resume``.

The machine owns its timers (through ``TrialClock``) and is only driven
through ``start``, ``respond``, ``timeout``, ``advance``, ``pause``,
``resume``, ``mark_inactive`` and ``complete``. Trial outcomes go to a
``TrialStore``; storage failures are logged and never block the session.
"""
import logging
import random
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import replace
from enum import Enum
from typing import Callable, Optional

from django.conf import settings

from promptstudy.stroop.helpers.clock import Scheduler
from promptstudy.stroop.helpers.clock import TrialClock
from promptstudy.stroop.helpers.stimuli import Instruction
from promptstudy.stroop.helpers.stimuli import StroopTrial
from promptstudy.stroop.helpers.stimuli import flip_instruction
from promptstudy.stroop.helpers.stimuli import generate_trial

logger = logging.getLogger(__name__)

INACTIVE_ANSWER = "inactive"


class MachineState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    FEEDBACK = "feedback"
    INTER_TRIAL_INTERVAL = "inter_trial_interval"
    COMPLETE = "complete"


_PAUSABLE_STATES = frozenset(
    {
        MachineState.AWAITING_RESPONSE,
        MachineState.FEEDBACK,
        MachineState.INTER_TRIAL_INTERVAL,
    }
)


@dataclass(frozen=True)
class StroopConfig:
    iti_ms: int = 1000
    trial_timer_ms: int = 5000
    instruction_switch_period: int = 10
    feedback_ms: int = 1000
    max_trials: int = 0

    def __post_init__(self):
        for name in ("iti_ms", "trial_timer_ms", "feedback_ms", "max_trials"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.instruction_switch_period < 1:
            raise ValueError(
                f"instruction_switch_period must be >= 1, got {self.instruction_switch_period}"
            )

    @classmethod
    def from_settings(cls) -> "StroopConfig":
        return cls(
            iti_ms=getattr(settings, "STROOP_ITI_MS", 1000),
            trial_timer_ms=getattr(settings, "STROOP_TRIAL_TIMER_MS", 5000),
            instruction_switch_period=getattr(settings, "STROOP_INSTRUCTION_SWITCH_PERIOD", 10),
            feedback_ms=getattr(settings, "STROOP_FEEDBACK_MS", 1000),
            max_trials=getattr(settings, "STROOP_MAX_TRIALS", 0),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SessionStats:
    total_trials: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    skipped_trials: int = 0

    def record(self, correctness: Optional[bool]) -> None:
        self.total_trials += 1
        if correctness is None:
            self.skipped_trials += 1
        elif correctness:
            self.correct_answers += 1
        else:
            self.incorrect_answers += 1

    @property
    def accuracy(self) -> Optional[float]:
        if not self.total_trials:
            return None
        return self.correct_answers / self.total_trials

    def to_dict(self) -> dict:
        return {**asdict(self), "accuracy": self.accuracy}


@dataclass(frozen=True)
class TrialOutcome:
    user_id: str
    session_id: str
    trial_number: int
    instruction: str
    word: str
    ink_color: str
    condition: str
    iti_ms: int
    reaction_time_ms: Optional[int]
    correctness: Optional[bool]
    user_answer: Optional[str]

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "trial_number": self.trial_number,
            "instruction": str(self.instruction),
            "word": self.word,
            "ink_color": self.ink_color,
            "condition": str(self.condition),
            "iti_ms": self.iti_ms,
            "reaction_time_ms": self.reaction_time_ms,
            "correctness": self.correctness,
            "user_answer": self.user_answer,
        }


class StroopSessionMachine:
    def __init__(
        self,
        store,
        *,
        user_id: str,
        session_id: str,
        scheduler: Scheduler,
        config: Optional[StroopConfig] = None,
        rng: Optional[random.Random] = None,
        initial_instruction: str = Instruction.WORD,
        on_trial_start: Optional[Callable[[int, StroopTrial], None]] = None,
        on_outcome: Optional[Callable[[TrialOutcome], None]] = None,
        on_complete: Optional[Callable[[SessionStats], None]] = None,
    ):
        self.store = store
        self.user_id = str(user_id)
        self.session_id = str(session_id)
        self.config = config or StroopConfig.from_settings()
        self.clock = TrialClock(scheduler)
        self._rng = rng or random.Random()
        self.on_trial_start = on_trial_start
        self.on_outcome = on_outcome
        self.on_complete = on_complete

        self.state = MachineState.IDLE
        self.paused = False
        self.trial_number = 1
        self.instruction = Instruction(initial_instruction)
        self.current_trial: Optional[StroopTrial] = None
        self.last_outcome: Optional[TrialOutcome] = None
        self.feedback: Optional[str] = None
        self.stats = SessionStats()

        self._unresolved = False
        self._inactive_marked = False
        self._trial_started_at: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_seconds = 0.0

    # ─────────────────────────────────────────────────────────────────────
    # Mutators
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> bool:
        if self.state is not MachineState.IDLE:
            return False
        logger.info("Stroop session %s started for user %s", self.session_id, self.user_id)
        self._start_trial(self.instruction)
        return True

    def respond(self, answer) -> bool:
        """
        Resolve the current trial with the participant's answer.

        Late answers (after a timeout), answers while paused and answers
        outside AWAITING_RESPONSE are ignored.
        """
        if not self._accepting():
            logger.debug("Ignored response %r in state %s (paused=%s)", answer, self.state.value, self.paused)
            return False
        self._unresolved = False
        self.clock.cancel_response_window()
        reaction_time_ms = self._active_ms()
        normalised = str(answer).strip().lower()
        correctness = normalised == self.current_trial.correct_answer
        self._resolve(reaction_time_ms, correctness, answer)
        return True

    def timeout(self) -> bool:
        if self.config.trial_timer_ms <= 0 or not self._accepting():
            return False
        self._unresolved = False
        self.clock.cancel_response_window()
        self._resolve(self._active_ms(), None, None)
        return True

    def advance(self) -> bool:
        if self.state is not MachineState.FEEDBACK:
            return False
        self.clock.cancel_feedback()
        next_instruction = self.instruction
        if self.trial_number % self.config.instruction_switch_period == 0:
            next_instruction = flip_instruction(self.instruction)
            logger.debug(
                "Switching instruction from %s to %s after trial %d",
                self.instruction,
                next_instruction,
                self.trial_number,
            )
        self.trial_number += 1
        self.instruction = next_instruction
        self.current_trial = None
        self.feedback = None

        if self.config.max_trials and self.stats.total_trials >= self.config.max_trials:
            self.complete()
            return True

        if self.clock.start_iti(self.config.iti_ms, lambda: self._start_trial(next_instruction)):
            self.state = MachineState.INTER_TRIAL_INTERVAL
        else:
            self._start_trial(next_instruction)
        return True

    def mark_inactive(self) -> bool:
        """
        Flag the most recent outcome as an inactivity episode.

        Runs at most once until the next trial starts, and never touches the
        session statistics.
        """
        if self.last_outcome is None or self._inactive_marked:
            return False
        self._inactive_marked = True
        self.last_outcome = replace(self.last_outcome, user_answer=INACTIVE_ANSWER)
        try:
            self.store.mark_last_inactive(self.user_id, self.session_id)
        except Exception:
            logger.exception(
                "Failed to mark last trial inactive for session %s", self.session_id
            )
        return True

    def pause(self) -> bool:
        if self.paused or self.state not in _PAUSABLE_STATES:
            return False
        self.paused = True
        self._paused_at = self.clock.scheduler.time()
        self.clock.pause()
        return True

    def resume(self) -> bool:
        if not self.paused:
            return False
        self.paused = False
        if self._paused_at is not None:
            self._paused_seconds += self.clock.scheduler.time() - self._paused_at
            self._paused_at = None
        self.clock.resume()
        return True

    def set_paused(self, paused: bool) -> bool:
        return self.pause() if paused else self.resume()

    def complete(self) -> bool:
        if self.state is MachineState.COMPLETE:
            return False
        self.clock.cancel_all()
        self.state = MachineState.COMPLETE
        self.paused = False
        self._unresolved = False
        self.current_trial = None
        logger.info(
            "Stroop session %s complete: %d trials (%d correct, %d incorrect, %d skipped)",
            self.session_id,
            self.stats.total_trials,
            self.stats.correct_answers,
            self.stats.incorrect_answers,
            self.stats.skipped_trials,
        )
        if self.on_complete:
            self.on_complete(self.stats)
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _accepting(self) -> bool:
        return self.state is MachineState.AWAITING_RESPONSE and not self.paused and self._unresolved

    def _start_trial(self, instruction) -> None:
        if self.state is MachineState.COMPLETE:
            return
        self.instruction = Instruction(instruction)
        self.current_trial = generate_trial(self.instruction, self._rng)
        self.feedback = None
        self._unresolved = True
        self._inactive_marked = False
        self._trial_started_at = self.clock.scheduler.time()
        self._paused_seconds = 0.0
        self._paused_at = self._trial_started_at if self.paused else None
        self.state = MachineState.AWAITING_RESPONSE
        self.clock.start_response_window(self.config.trial_timer_ms, self.timeout)
        if self.on_trial_start:
            self.on_trial_start(self.trial_number, self.current_trial)

    def _active_ms(self) -> int:
        now = self.clock.scheduler.time()
        paused = self._paused_seconds
        if self._paused_at is not None:
            paused += now - self._paused_at
        return int(round((now - self._trial_started_at - paused) * 1000))

    def _resolve(self, reaction_time_ms, correctness, answer) -> None:
        trial = self.current_trial
        outcome = TrialOutcome(
            user_id=self.user_id,
            session_id=self.session_id,
            trial_number=self.trial_number,
            instruction=trial.instruction,
            word=trial.word,
            ink_color=trial.ink_color,
            condition=trial.condition,
            iti_ms=self.config.iti_ms,
            reaction_time_ms=reaction_time_ms,
            correctness=correctness,
            user_answer=answer,
        )
        self.last_outcome = outcome
        self.stats.record(correctness)
        self.feedback = "correct" if correctness else "incorrect"
        self.state = MachineState.FEEDBACK
        self._persist(outcome)
        if self.on_outcome:
            self.on_outcome(outcome)
        if self.state is not MachineState.FEEDBACK:
            return
        if not self.clock.start_feedback(self.config.feedback_ms, self.advance):
            self.advance()

    def _persist(self, outcome: TrialOutcome) -> None:
        try:
            self.store.record(outcome)
        except Exception:
            logger.exception(
                "Failed to record trial %d for session %s", outcome.trial_number, self.session_id
            )
