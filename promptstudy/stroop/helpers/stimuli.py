"""
Stroop stimulus generation.

Condition policy: a fair coin decides whether a trial is consistent.
Consistent trials print the word in its own colour; inconsistent trials draw
the ink uniformly from the three remaining colours. The word itself is always
drawn uniformly, so every word appears equally often in both conditions.
"""
import random
from dataclasses import dataclass

from django.db.models import TextChoices

COLOR_WORDS = ("RED", "BLUE", "GREEN", "YELLOW")
COLORS = ("red", "blue", "green", "yellow")


class Instruction(TextChoices):
    WORD = "word", "Choose the WORD"
    COLOR = "color", "Choose the COLOR"


class Condition(TextChoices):
    CONSISTENT = "consistent", "Consistent"
    INCONSISTENT = "inconsistent", "Inconsistent"


def flip_instruction(instruction):
    return Instruction.COLOR if instruction == Instruction.WORD else Instruction.WORD


@dataclass(frozen=True)
class StroopTrial:
    instruction: str
    word: str
    ink_color: str

    @property
    def condition(self) -> str:
        if self.ink_color == self.word.lower():
            return Condition.CONSISTENT
        return Condition.INCONSISTENT

    @property
    def correct_answer(self) -> str:
        if self.instruction == Instruction.WORD:
            return self.word.lower()
        return self.ink_color


def generate_trial(instruction, rng=None) -> StroopTrial:
    """
    Build one stimulus for the given instruction mode.

    Pass a seeded ``random.Random`` to make the sequence reproducible.
    """
    rng = rng or random.Random()
    word = rng.choice(COLOR_WORDS)
    if rng.random() < 0.5:
        ink_color = word.lower()
    else:
        ink_color = rng.choice([c for c in COLORS if c != word.lower()])
    return StroopTrial(instruction=Instruction(instruction), word=word, ink_color=ink_color)


def answer_options(instruction) -> list[dict]:
    """
    Response buttons for the instruction mode.

    Both modes submit the lowercase colour name; only the label differs.
    """
    if Instruction(instruction) == Instruction.WORD:
        return [{"value": word.lower(), "label": word} for word in COLOR_WORDS]
    return [{"value": color, "label": color.upper()} for color in COLORS]
