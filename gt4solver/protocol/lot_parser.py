"""
Lot-number slicing programs.

A mapping looks like

    {"(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])":"n[13:18]"}

The key side is a list of groups separated by "+.+", each group a "+"-joined
list of n[start:end] slices. Slices are inclusive of `end`. The key string is
split on "." into nesting levels and every level shares the value string as
its innermost leaf.
"""
import logging
import re
from functools import lru_cache

from gt4solver.errors import MappingFormatError

logger = logging.getLogger(__name__)

Group = tuple[tuple[int, int], ...]
Program = tuple[Group, ...]

_MAPPING_FORMS = (
    re.compile(r'"([^"]+)":"([^"]+)"'),
    re.compile(r'"([^"]+)":\'([^\']+)\''),
)
_SLICE = re.compile(r"\[(\d+):(\d+)\]")
_GROUP_SEP = "+.+"


def compile_pattern(pattern: str) -> Program:
    groups = []
    for part in pattern.split(_GROUP_SEP):
        group = tuple(
            (int(m.group(1)), int(m.group(2)))
            for m in (_SLICE.search(sub) for sub in part.split("+"))
            if m is not None
        )
        if group:
            groups.append(group)
    return tuple(groups)


def run_program(program: Program, lot_number: str) -> str:
    return ".".join(
        "".join(lot_number[start:end + 1] for start, end in group)
        for group in program
    )


class LotParser:
    def __init__(self, key_program: Program, value_program: Program):
        self.key_program = key_program
        self.value_program = value_program

    @classmethod
    def compile(cls, mapping: str) -> "LotParser":
        return _compile_mapping(mapping)

    def evaluate(self, lot_number: str) -> dict:
        if not self.key_program:
            return {}

        segments = run_program(self.key_program, lot_number).split(".")
        value = run_program(self.value_program, lot_number)

        result: dict = {}
        node = result
        for segment in segments[:-1]:
            node = node.setdefault(segment, {})
        node[segments[-1]] = value
        return result


@lru_cache(maxsize=32)
def _compile_mapping(mapping: str) -> LotParser:
    for form in _MAPPING_FORMS:
        match = form.search(mapping)
        if match:
            break
    else:
        raise MappingFormatError(f"Invalid mapping format: {mapping}")

    key_pattern, value_pattern = match.groups()
    logger.debug("Compiled mapping key=%s value=%s", key_pattern, value_pattern)
    return LotParser(compile_pattern(key_pattern), compile_pattern(value_pattern))
