"""Assembles the signed submission (the `w` verify parameter)."""
import json
import logging
import random

from gt4solver.models.challenge import (
    AiAnswer,
    ChallengeLoad,
    Constants,
    GobangAnswer,
    IconAnswer,
    SlideAnswer,
    SolverResult,
)
from gt4solver.protocol import pow as pow_engine
from gt4solver.protocol.lot_parser import LotParser
from gt4solver.services.encryption import encrypt

logger = logging.getLogger(__name__)

# Vendor-specific magic numbers, reverse-engineered from the vendor client.
# Do not simplify.
SLIDE_RESPONSE_SCALE = 1.0059466666666665
SLIDE_RESPONSE_BIAS = 2.0

PASSTIME_MIN_MS = 600
PASSTIME_MAX_MS = 1199

# Static telemetry the vendor script always sends
_EM = {"cp": 0, "ek": "11", "nt": 0, "ph": 0, "sc": 0, "si": 0, "wd": 1}
_GEE_GUARD = {
    "roe": {
        "auh": "3",
        "aup": "3",
        "cdc": "3",
        "egp": "3",
        "res": "3",
        "rew": "3",
        "sep": "3",
        "snh": "3",
    }
}


def merge_layers(*layers: dict) -> dict:
    """Merge top-level keys of each layer in order; later layers win collisions."""
    merged: dict = {}
    for layer in layers:
        merged.update(layer)
    return merged


def base_fields(
    lot_number: str,
    pow_result: pow_engine.PowResult,
    device_id: str = "",
) -> dict:
    return {
        "geetest": "captcha",
        "lang": "zh",
        "ep": "123",
        "biht": "1426265548",
        # Empty unless the constants carry one; the vendor client always sends ""
        "device_id": device_id,
        "lot_number": lot_number,
        "pow_msg": pow_result.message,
        "pow_sign": pow_result.signature,
        "em": dict(_EM),
        "gee_guard": {"roe": dict(_GEE_GUARD["roe"])},
    }


def _passtime() -> int:
    return random.randint(PASSTIME_MIN_MS, PASSTIME_MAX_MS)


def answer_fields(solver_result: SolverResult | None) -> dict:
    match solver_result:
        case None | AiAnswer():
            return {}
        case SlideAnswer(offset=offset):
            return {
                "passtime": _passtime(),
                "setLeft": offset,
                "userresponse": offset / SLIDE_RESPONSE_SCALE + SLIDE_RESPONSE_BIAS,
            }
        case GobangAnswer(remove=remove, fill=fill):
            return {"userresponse": [list(remove), list(fill)]}
        case IconAnswer(points=points):
            return {
                "passtime": _passtime(),
                "userresponse": [list(p) for p in points],
            }
        case _:
            raise TypeError(f"Unknown solver result: {solver_result!r}")


def serialize(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def build_payload(
    load: ChallengeLoad,
    captcha_id: str,
    constants: Constants,
    solver_result: SolverResult | None,
    *,
    pow_result: pow_engine.PowResult | None = None,
) -> str:
    """
    Merge order, later wins: base fields, auxiliary constants, the
    lot-number structure, then the category answer.

    The PoW is computed inline (blocking) when `pow_result` is not given.
    """
    if pow_result is None:
        detail = load.pow_detail
        pow_result = pow_engine.solve(
            load.lot_number, captcha_id,
            detail.hashfunc, detail.version, detail.bits, detail.datetime,
        )
    lot_fields = LotParser.compile(constants.mapping).evaluate(load.lot_number)
    payload = merge_layers(
        base_fields(load.lot_number, pow_result, constants.device_id),
        dict(constants.auxiliary),
        lot_fields,
        answer_fields(solver_result),
    )
    return serialize(payload)


async def sign_submission(
    load: ChallengeLoad,
    captcha_id: str,
    constants: Constants,
    solver_result: SolverResult | None = None,
) -> str:
    """PoW for the current lot number, build the payload, encrypt it under load.protocol_type."""
    pow_result = await pow_engine.solve_async(load.lot_number, captcha_id, load.pow_detail)
    raw = build_payload(load, captcha_id, constants, solver_result, pow_result=pow_result)
    logger.debug("Built payload for lot_number=%s (%d bytes)", load.lot_number, len(raw))
    return encrypt(raw, load.protocol_type)
