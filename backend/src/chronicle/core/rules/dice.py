from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from pydantic import BaseModel

from chronicle.core.errors import DiceFormulaError


class Dice(Protocol):
    """Anything with ``randint`` (``random.Random``, a seeded stub in tests)."""

    def randint(self, a: int, b: int) -> int: ...


_default_rng = random.Random()


def resolve_rng(rng: Optional[Dice]) -> Dice:
    return rng if rng is not None else _default_rng


# "2d6", "d20", "3"
_DICE_TERM_RE = re.compile(r"^(\d*)d(\d+)$")
_SIGNED_TERM_RE = re.compile(r"[+-]?[^+-]+")


@dataclass(frozen=True)
class DiceTerm:
    count: int
    sides: int


@dataclass(frozen=True)
class DiceFormula:
    """Parsed ``sum(k x dN) + flat``, e.g. ``2d6+1d4+3``."""

    text: str
    terms: Tuple[DiceTerm, ...]
    flat: int = 0


class D20Roll(BaseModel):
    d20: int
    modifier: int
    total: int
    is_nat20: bool
    is_nat1: bool


class FormulaRoll(BaseModel):
    formula: str
    rolls: List[int]
    flat: int
    total: int
    detail: str


def parse_formula(formula: str) -> DiceFormula:
    text = (formula or "").replace(" ", "").lower()
    if not text:
        raise DiceFormulaError(formula)

    tokens = _SIGNED_TERM_RE.findall(text)
    if "".join(tokens) != text:
        raise DiceFormulaError(formula)

    terms: list[DiceTerm] = []
    flat = 0
    for tok in tokens:
        negative = tok.startswith("-")
        body = tok.lstrip("+-")
        m = _DICE_TERM_RE.match(body)
        if m:
            count = int(m.group(1) or 1)
            sides = int(m.group(2))
            # negative dice terms ("1d6-1d4") are not supported
            if negative or sides < 1:
                raise DiceFormulaError(formula)
            terms.append(DiceTerm(count=count, sides=sides))
        elif body.isdigit():
            flat += -int(body) if negative else int(body)
        else:
            raise DiceFormulaError(formula)

    return DiceFormula(text=text, terms=tuple(terms), flat=flat)


def roll_die(rng: Dice, sides: int) -> int:
    return rng.randint(1, sides)


def roll_d20(rng: Dice, modifier: int = 0) -> D20Roll:
    nat = roll_die(rng, 20)
    return D20Roll(
        d20=nat,
        modifier=modifier,
        total=nat + modifier,
        is_nat20=nat == 20,
        is_nat1=nat == 1,
    )


def signed(value: int) -> str:
    return f"+{value}" if value > 0 else str(value)


def roll_formula(rng: Dice, formula: str) -> FormulaRoll:
    parsed = parse_formula(formula)
    rolls: list[int] = []
    for term in parsed.terms:
        rolls.extend(roll_die(rng, term.sides) for _ in range(term.count))

    detail = "+".join(str(r) for r in rolls)
    if parsed.flat:
        detail = f"{detail}{signed(parsed.flat)}" if detail else str(parsed.flat)

    return FormulaRoll(
        formula=parsed.text,
        rolls=rolls,
        flat=parsed.flat,
        total=sum(rolls) + parsed.flat,
        detail=detail or "0",
    )


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
