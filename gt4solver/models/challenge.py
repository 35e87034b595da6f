"""Challenge load data, versioned constants and solver answers."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class RiskType(str, Enum):
    SLIDE = "slide"
    GOBANG = "gobang"
    ICON = "icon"
    AI = "ai"


@dataclass(frozen=True)
class PowDetail:
    hashfunc: str
    version: str
    bits: int
    datetime: str


@dataclass(frozen=True)
class ChallengeLoad:
    """
    One /load response. Only lot_number, payload and process_token ever
    change afterwards, and only through dataclasses.replace on a continue.
    """
    lot_number: str
    payload: str
    process_token: str
    protocol_type: str
    pow_detail: PowDetail
    # Category-specific fields, consumed by the solvers only
    slice: str | None = None
    bg: str | None = None
    ques: Any = None
    imgs: str | None = None


@dataclass(frozen=True)
class Constants:
    mapping: str
    auxiliary: dict[str, str] = field(default_factory=dict)
    device_id: str = ""


@dataclass(frozen=True)
class SlideAnswer:
    offset: float


@dataclass(frozen=True)
class GobangAnswer:
    remove: tuple[int, int]
    fill: tuple[int, int]


@dataclass(frozen=True)
class IconAnswer:
    points: tuple[tuple[float, float], ...]


@dataclass(frozen=True)
class AiAnswer:
    pass


SolverResult = Union[SlideAnswer, GobangAnswer, IconAnswer, AiAnswer]
