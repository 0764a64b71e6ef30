"""Server-side summary metric computation for the Stroop task."""
import statistics

from promptstudy.stroop.helpers.machine import INACTIVE_ANSWER
from promptstudy.stroop.helpers.stimuli import Condition
from promptstudy.stroop.helpers.stimuli import Instruction


def _responded(trial) -> bool:
    return (
        trial.get("correctness") is not None
        and trial.get("reaction_time_ms") is not None
        and trial.get("user_answer") != INACTIVE_ANSWER
    )


def _accuracy(trials):
    if not trials:
        return None
    return sum(1 for t in trials if t.get("correctness") is True) / len(trials)


def _median_rt(trials):
    rts = [t["reaction_time_ms"] for t in trials if _responded(t)]
    return statistics.median(rts) if rts else None


def compute_stroop_summary(trials):
    """
    Compute Stroop summary metrics from a list of trial dicts.

    Each trial dict is expected to have:
      condition (str)             : "consistent" or "inconsistent"
      instruction (str)           : "word" or "color"
      reaction_time_ms (int|None) : None when never measured
      correctness (bool|None)     : None on timeout
      user_answer (str|None)      : "inactive" for inactivity-flagged trials

    Timeouts count against accuracy and as skipped, whether or not they were
    later flagged inactive. RT medians only use answered trials that were
    not flagged inactive.

    Returns dict with:
      total_trials, skipped_count, inactive_count,
      consistent_median_rt, inconsistent_median_rt,
      interference_effect_ms : inconsistent_median_rt - consistent_median_rt
      consistent_accuracy, inconsistent_accuracy,
      word_accuracy, color_accuracy, overall_accuracy
    """
    consistent = [t for t in trials if t.get("condition") == Condition.CONSISTENT]
    inconsistent = [t for t in trials if t.get("condition") == Condition.INCONSISTENT]
    word_trials = [t for t in trials if t.get("instruction") == Instruction.WORD]
    color_trials = [t for t in trials if t.get("instruction") == Instruction.COLOR]

    c_median = _median_rt(consistent)
    i_median = _median_rt(inconsistent)
    interference = (
        (i_median - c_median) if (i_median is not None and c_median is not None) else None
    )

    return {
        "total_trials": len(trials),
        "skipped_count": sum(1 for t in trials if t.get("correctness") is None),
        "inactive_count": sum(1 for t in trials if t.get("user_answer") == INACTIVE_ANSWER),
        "consistent_median_rt": c_median,
        "inconsistent_median_rt": i_median,
        "interference_effect_ms": interference,
        "consistent_accuracy": _accuracy(consistent),
        "inconsistent_accuracy": _accuracy(inconsistent),
        "word_accuracy": _accuracy(word_trials),
        "color_accuracy": _accuracy(color_trials),
        "overall_accuracy": _accuracy(trials),
    }
