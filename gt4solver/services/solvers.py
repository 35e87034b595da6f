"""
Puzzle solvers, one per risk type.

Gobang and AI are solved here. Slide and icon need image matching, which is
injected as a plain callable so the protocol code stays free of any imaging
stack.
"""
import asyncio
import logging
import random
from collections import Counter
from typing import Callable, Iterator, Protocol

from gt4solver.errors import MissingChallengeField, PuzzleUnsolved, UnsupportedRiskType
from gt4solver.models.challenge import (
    AiAnswer,
    ChallengeLoad,
    GobangAnswer,
    IconAnswer,
    RiskType,
    SlideAnswer,
    SolverResult,
)

logger = logging.getLogger(__name__)

# Vendor-specific magic numbers: transparent padding on the slide piece, and
# the icon canvas rescale used by the vendor client. Do not simplify.
SLIDE_PIECE_PADDING_PX = 41.0
SLIDE_JITTER_PX = 0.5
ICON_X_SCALE = 33 / 100
ICON_Y_SCALE = 49 / 100

Cell = tuple[int, int]
# (piece image, background image) -> (best match x, piece width)
SlideMatcher = Callable[[bytes, bytes], tuple[float, float]]
# (icon image, question icon paths) -> pixel centres in question order
IconLocator = Callable[[bytes, list[str]], list[tuple[float, float]]]


class ImageSource(Protocol):
    async def download_image(self, path: str) -> bytes: ...


class PuzzleSolver(Protocol):
    async def solve(self, load: ChallengeLoad, images: ImageSource) -> SolverResult: ...


# ---------------------------------------------------------------------------
# Gobang
# ---------------------------------------------------------------------------

def _lines(n: int) -> Iterator[list[Cell]]:
    """Full-length lines only: rows, columns, then both diagonals."""
    for row in range(n):
        yield [(row, col) for col in range(n)]
    for col in range(n):
        yield [(row, col) for row in range(n)]
    yield [(i, i) for i in range(n)]
    yield [(n - 1 - i, i) for i in range(n)]


def find_four_in_line(board: list[list[int]]) -> tuple[Cell, Cell] | None:
    """
    Find a line holding n-1 equal pieces and one empty (0) cell, and a
    matching piece outside that line to move into the gap.
    Returns (remove, fill) or None.
    """
    n = len(board)
    for line in _lines(n):
        values = [board[r][c] for r, c in line]
        counts = Counter(values)
        if counts.get(0) != 1:
            continue

        target = next((v for v, k in counts.items() if k == n - 1 and v != 0), None)
        if target is None:
            continue

        fill = line[values.index(0)]
        in_line = set(line)
        for r in range(n):
            for c in range(n):
                if (r, c) not in in_line and board[r][c] == target:
                    return (r, c), fill
    return None


def _parse_board(ques) -> list[list[int]]:
    if not isinstance(ques, list) or not ques:
        raise MissingChallengeField("ques", RiskType.GOBANG.value)
    n = len(ques)
    if not all(isinstance(row, list) and len(row) == n for row in ques):
        raise PuzzleUnsolved(f"Gobang board is not {n}x{n}")
    try:
        return [[int(v) for v in row] for row in ques]
    except (TypeError, ValueError) as exc:
        raise PuzzleUnsolved(f"Gobang board has non-integer cells: {exc}") from exc


class GobangSolver:
    async def solve(self, load: ChallengeLoad, images: ImageSource) -> SolverResult:
        board = _parse_board(load.ques)
        move = find_four_in_line(board)
        if move is None:
            raise PuzzleUnsolved("Could not solve gobang puzzle")
        remove, fill = move
        logger.debug("Gobang move remove=%s fill=%s", remove, fill)
        return GobangAnswer(remove=remove, fill=fill)


# ---------------------------------------------------------------------------
# Slide / icon adapters
# ---------------------------------------------------------------------------

class SlideSolver:
    def __init__(self, matcher: SlideMatcher):
        self.matcher = matcher

    async def solve(self, load: ChallengeLoad, images: ImageSource) -> SolverResult:
        if not load.slice:
            raise MissingChallengeField("slice", RiskType.SLIDE.value)
        if not load.bg:
            raise MissingChallengeField("bg", RiskType.SLIDE.value)

        # Independent reads, fetched concurrently
        piece, background = await asyncio.gather(
            images.download_image(load.slice),
            images.download_image(load.bg),
        )
        match_x, piece_width = await asyncio.to_thread(self.matcher, piece, background)
        offset = match_x + piece_width / 2 - SLIDE_PIECE_PADDING_PX
        return SlideAnswer(offset=offset + random.random() * SLIDE_JITTER_PX)


class IconSolver:
    def __init__(self, locator: IconLocator):
        self.locator = locator

    async def solve(self, load: ChallengeLoad, images: ImageSource) -> SolverResult:
        if not load.imgs:
            raise MissingChallengeField("imgs", RiskType.ICON.value)
        if not isinstance(load.ques, list) or not load.ques:
            raise MissingChallengeField("ques", RiskType.ICON.value)

        image = await images.download_image(load.imgs)
        centres = await asyncio.to_thread(self.locator, image, [str(q) for q in load.ques])
        if len(centres) != len(load.ques):
            raise PuzzleUnsolved(
                f"Icon locator returned {len(centres)} points for {len(load.ques)} questions"
            )
        return IconAnswer(
            points=tuple((x * ICON_X_SCALE, y * ICON_Y_SCALE) for x, y in centres)
        )


class AiSolver:
    """Invisible captcha: nothing to solve."""

    async def solve(self, load: ChallengeLoad, images: ImageSource) -> SolverResult:
        return AiAnswer()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class SolverRegistry:
    def __init__(self, solvers: dict[RiskType, PuzzleSolver] | None = None):
        self._solvers: dict[RiskType, PuzzleSolver] = dict(solvers or {})

    def register(self, risk_type: RiskType, solver: PuzzleSolver) -> None:
        self._solvers[risk_type] = solver

    def get(self, risk_type: RiskType) -> PuzzleSolver:
        try:
            return self._solvers[risk_type]
        except KeyError:
            raise UnsupportedRiskType(f"No solver registered for {risk_type.value}") from None

    def __contains__(self, risk_type: RiskType) -> bool:
        return risk_type in self._solvers


def default_registry() -> SolverRegistry:
    return SolverRegistry({RiskType.GOBANG: GobangSolver(), RiskType.AI: AiSolver()})
