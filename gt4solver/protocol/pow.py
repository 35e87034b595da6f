"""Proof-of-work search over the load response's pow_detail."""
import asyncio
import hashlib
import logging
import threading
import time
from dataclasses import dataclass

from gt4solver.errors import PowCancelled, UnsupportedHashError
from gt4solver.models.challenge import PowDetail
from gt4solver.services.encryption import random_uid

logger = logging.getLogger(__name__)

_HASHERS = {
    "md5": hashlib.md5,
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}

# Highest allowed value of the nibble after the zero prefix, keyed by bits % 4
_REMAINDER_THRESHOLD = {1: 7, 2: 3, 3: 1}

_CANCEL_POLL_EVERY = 1024


@dataclass(frozen=True)
class PowResult:
    message: str
    signature: str


def meets_difficulty(digest: str, bits: int) -> bool:
    """True when the hex digest has `bits` leading zero bits."""
    zeros, remainder = divmod(bits, 4)
    if not digest.startswith("0" * zeros):
        return False
    if remainder == 0:
        return True
    if len(digest) <= zeros:
        return False
    return int(digest[zeros], 16) <= _REMAINDER_THRESHOLD[remainder]


def _hasher(hashfunc: str):
    try:
        return _HASHERS[hashfunc]
    except KeyError:
        raise UnsupportedHashError(f"Unsupported hash function: {hashfunc}") from None


def solve(
    lot_number: str,
    captcha_id: str,
    hashfunc: str,
    version: str,
    bits: int,
    datetime: str,
    *,
    cancel: threading.Event | None = None,
) -> PowResult:
    """
    Brute-force a nonce so that hash(prefix + nonce) has `bits` leading zero bits.

    There is no iteration cap: each candidate succeeds with probability
    1/2**bits, so a large `bits` from the server means an arbitrarily long
    search. `cancel` is polled periodically and aborts with PowCancelled.
    """
    hasher = _hasher(hashfunc)
    prefix = f"{version}|{bits}|{hashfunc}|{datetime}|{captcha_id}|{lot_number}||"

    t0 = time.perf_counter()
    tries = 0
    while True:
        tries += 1
        if cancel is not None and tries % _CANCEL_POLL_EVERY == 0 and cancel.is_set():
            raise PowCancelled(f"PoW search cancelled after {tries} candidates")

        message = prefix + random_uid()
        signature = hasher(message.encode()).hexdigest()
        if meets_difficulty(signature, bits):
            logger.debug(
                "PoW solved bits=%d tries=%d in %.1fms",
                bits, tries, (time.perf_counter() - t0) * 1000,
            )
            return PowResult(message=message, signature=signature)


async def solve_async(lot_number: str, captcha_id: str, detail: PowDetail) -> PowResult:
    """Run the search on a worker thread; cancelling the awaiting task stops it."""
    _hasher(detail.hashfunc)
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(
            solve,
            lot_number,
            captcha_id,
            detail.hashfunc,
            detail.version,
            detail.bits,
            detail.datetime,
            cancel=cancel,
        )
    except asyncio.CancelledError:
        cancel.set()
        raise
