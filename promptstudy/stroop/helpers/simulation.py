"""
A scripted participant for piloting and QA runs of the Stroop engine.

Reaction times are gaussian with an interference cost on inconsistent
trials; the participant answers correctly with a configurable probability
and occasionally lets the response window run out.
"""
import random
from dataclasses import dataclass
from typing import Optional

from promptstudy.stroop.helpers.stimuli import COLORS
from promptstudy.stroop.helpers.stimuli import Condition


@dataclass
class ParticipantProfile:
    accuracy: float = 0.9
    miss_rate: float = 0.05
    rt_mean_ms: float = 650.0
    rt_sd_ms: float = 120.0
    interference_ms: float = 90.0
    rt_min_ms: float = 150.0

    def __post_init__(self):
        for name in ("accuracy", "miss_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")


class SimulatedParticipant:
    def __init__(self, profile: Optional[ParticipantProfile] = None, rng: Optional[random.Random] = None):
        self.profile = profile or ParticipantProfile()
        self._rng = rng or random.Random()
        self.machine = None

    def attach(self, machine) -> "SimulatedParticipant":
        """Register as the machine's trial-start listener."""
        self.machine = machine
        machine.on_trial_start = self.on_trial_start
        return self

    def on_trial_start(self, trial_number, trial) -> None:
        machine = self.machine
        if machine.config.trial_timer_ms > 0 and self._rng.random() < self.profile.miss_rate:
            return
        answer = self.choose_answer(trial)
        delay_ms = self.sample_rt(trial)

        def press():
            # a stale press must not answer a later trial
            if machine.current_trial is trial and machine.trial_number == trial_number:
                machine.respond(answer)

        machine.clock.scheduler.call_later(delay_ms / 1000, press)

    def sample_rt(self, trial) -> float:
        mean = self.profile.rt_mean_ms
        if trial.condition == Condition.INCONSISTENT:
            mean += self.profile.interference_ms
        return max(self.profile.rt_min_ms, self._rng.gauss(mean, self.profile.rt_sd_ms))

    def choose_answer(self, trial) -> str:
        if self._rng.random() < self.profile.accuracy:
            return trial.correct_answer
        return self._rng.choice([c for c in COLORS if c != trial.correct_answer])
