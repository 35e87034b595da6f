"""REST endpoints: GET /status, POST /solve, GET /sessions/{captcha_id}."""
import logging
import time
from dataclasses import asdict

import httpx
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from gt4solver.database import fetch_solve_sessions, insert_solve_session
from gt4solver.errors import (
    DeobfuscationError,
    EncryptionModeError,
    MalformedResponseError,
    MappingFormatError,
    MaxRetriesExceeded,
    PowBudgetError,
    SolverError,
    UnsupportedHashError,
    VerificationFailed,
)
from gt4solver.models.challenge import RiskType
from gt4solver.protocol.verifier import VerificationSession
from gt4solver.services.transport import GeetestTransport

logger = logging.getLogger(__name__)

router = APIRouter()


class SolveRequest(BaseModel):
    captcha_id: str = Field(..., min_length=1)
    risk_type: RiskType
    user_info: str | None = None


@router.get("/status")
async def status(request: Request):
    from gt4solver.config import settings
    return {
        "status": "ok",
        "service": "gt4solver",
        "risk_types": [rt.value for rt in RiskType if rt in request.app.state.solvers],
        "static_constants": settings.has_static_constants,
    }


async def _record(session: VerificationSession, passed: bool, reason: str | None = None) -> None:
    state = session.state
    await insert_solve_session(
        captcha_id=session.captcha_id,
        risk_type=session.risk_type.value,
        lot_number=state.load.lot_number if state else None,
        attempts=state.attempt if state else 0,
        passed=passed,
        timestamp=time.time(),
        reason=reason,
    )


@router.post("/solve")
async def solve_captcha(body: SolveRequest, request: Request):
    """Run one verification session and return the security code."""
    registry = request.app.state.solvers
    if body.risk_type not in registry:
        raise HTTPException(status_code=501, detail=f"No solver registered for {body.risk_type.value}")

    try:
        constants = request.app.state.constants_provider.fetch()
    except DeobfuscationError as e:
        raise HTTPException(status_code=503, detail=f"Constants unavailable: {e}")

    async with GeetestTransport() as transport:
        session = VerificationSession(
            transport,
            constants,
            body.captcha_id,
            body.risk_type,
            registry.get(body.risk_type),
            user_info=body.user_info,
        )
        try:
            seccode = await session.run()
        except (VerificationFailed, MaxRetriesExceeded, SolverError) as e:
            await _record(session, passed=False, reason=str(e))
            raise HTTPException(status_code=422, detail=str(e))
        except MappingFormatError as e:
            await _record(session, passed=False, reason=str(e))
            raise HTTPException(status_code=503, detail=f"Constants unavailable: {e}")
        except (MalformedResponseError, EncryptionModeError, UnsupportedHashError, PowBudgetError) as e:
            await _record(session, passed=False, reason=str(e))
            raise HTTPException(status_code=502, detail=str(e))
        except httpx.HTTPError as e:
            logger.warning("Upstream request failed for %s: %s", body.captcha_id, e)
            raise HTTPException(status_code=502, detail=f"Upstream request failed: {e}")

    await _record(session, passed=True)
    return asdict(seccode)


@router.get("/sessions/{captcha_id}")
async def get_sessions(captcha_id: str):
    """Return all recorded solve sessions for a captcha_id."""
    sessions = await fetch_solve_sessions(captcha_id)
    if not sessions:
        raise HTTPException(status_code=404, detail="No sessions found for captcha_id")
    return {"captcha_id": captcha_id, "sessions": sessions}
