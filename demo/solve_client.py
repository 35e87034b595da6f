"""
Solve one challenge directly (no REST service) and print the security code.
Needs GT4_MAPPING (and usually GT4_AUXILIARY) or GT4_CONSTANTS_FILE.
"""
import asyncio
import os
import sys
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gt4solver.errors import GT4Error
from gt4solver.models.challenge import RiskType
from gt4solver.protocol.verifier import solve

CAPTCHA_ID = os.getenv("CAPTCHA_ID", "55c86e822ef5984cc0b03a3bbfd1a7c7")
RISK_TYPE = RiskType(os.getenv("RISK_TYPE", "ai"))


async def run():
    print(f"[demo] Solving {RISK_TYPE.value} captcha {CAPTCHA_ID}")
    t0 = time.perf_counter()
    try:
        seccode = await solve(CAPTCHA_ID, RISK_TYPE)
    except GT4Error as e:
        print(f"[demo] FAILED ✗  {e}")
        return

    elapsed = time.perf_counter() - t0
    print(f"[demo] SOLVED ✓  in {elapsed:.2f}s")
    print(f"[demo]   lot_number: {seccode.lot_number}")
    print(f"[demo]   pass_token: {seccode.pass_token}")
    print(f"[demo]   gen_time:   {seccode.gen_time}")
    print(f"[demo]   captcha_output: {seccode.captcha_output[:50]}...")


if __name__ == "__main__":
    asyncio.run(run())
