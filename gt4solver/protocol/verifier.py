"""Drives load -> solve -> sign -> verify, resubmitting on "continue" responses."""
import logging

from gt4solver.config import settings
from gt4solver.errors import MaxRetriesExceeded, PowBudgetError, VerificationFailed
from gt4solver.models.challenge import ChallengeLoad, Constants, RiskType
from gt4solver.models.session import SecurityCode, SessionState, SubmissionOutcome, Verdict
from gt4solver.models.wire import VerifyBody
from gt4solver.protocol.payload import sign_submission
from gt4solver.services.constants import ConstantsProvider, default_provider
from gt4solver.services.solvers import PuzzleSolver, SolverRegistry, default_registry
from gt4solver.services.transport import GeetestTransport

logger = logging.getLogger(__name__)

CONTINUE_RESULT = "continue"
GENERIC_FAILURE = "Unknown verification error"


def interpret(response: VerifyBody) -> SubmissionOutcome:
    if response.seccode is not None:
        return SubmissionOutcome.success(response.seccode.to_seccode())
    if response.result == CONTINUE_RESULT:
        return SubmissionOutcome.proceed(
            lot_number=response.lot_number,
            payload=response.payload,
            process_token=response.process_token,
        )
    return SubmissionOutcome.failure(response.result or GENERIC_FAILURE)


def advance(state: SessionState, outcome: SubmissionOutcome) -> SessionState:
    """Count the submission; a continue also carries the server's updated fields forward."""
    state = state.submitted()
    if outcome.verdict is Verdict.CONTINUE:
        state = state.continued(outcome)
    return state


class VerificationSession:
    """
    One solve of one challenge. The solver runs once, before the first
    submission; every later submission re-signs the latest
    lot_number/payload/process_token without an answer.

    `transport` needs load(), verify() and download_image(); see
    GeetestTransport.
    """

    def __init__(
        self,
        transport,
        constants: Constants,
        captcha_id: str,
        risk_type: RiskType,
        solver: PuzzleSolver,
        *,
        max_attempts: int | None = None,
        user_info: str | None = None,
    ):
        self.transport = transport
        self.constants = constants
        self.captcha_id = captcha_id
        self.risk_type = risk_type
        self.solver = solver
        if max_attempts is None:
            max_attempts = settings.max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.user_info = user_info
        self.state: SessionState | None = None

    def _check_pow_budget(self, load: ChallengeLoad) -> None:
        limit = settings.pow_max_bits
        if limit is not None and load.pow_detail.bits > limit:
            raise PowBudgetError(
                f"Server asked for {load.pow_detail.bits} PoW bits, limit is {limit}"
            )

    async def run(self) -> SecurityCode:
        load = await self.transport.load(self.captcha_id, self.risk_type, self.user_info)
        logger.info(
            "Loaded %s captcha lot_number=%s pt=%s",
            self.risk_type.value, load.lot_number, load.protocol_type or "0",
        )
        self._check_pow_budget(load)

        answer = await self.solver.solve(load, self.transport)
        self.state = SessionState(load=load)

        while self.state.attempt < self.max_attempts:
            w = await sign_submission(self.state.load, self.captcha_id, self.constants, answer)
            answer = None

            response = await self.transport.verify(
                self.captcha_id, self.risk_type, self.state.load, w
            )
            outcome = interpret(response)
            self.state = advance(self.state, outcome)

            if outcome.verdict is Verdict.SUCCESS:
                logger.info("Captcha solved on attempt %d", self.state.attempt)
                return outcome.seccode

            if outcome.verdict is Verdict.CONTINUE:
                logger.debug("Received 'continue' on attempt %d, retrying", self.state.attempt)
                continue

            logger.info("Verification failed on attempt %d: %s", self.state.attempt, outcome.reason)
            raise VerificationFailed(outcome.reason)

        raise MaxRetriesExceeded(self.max_attempts)


async def solve(
    captcha_id: str,
    risk_type: RiskType,
    *,
    user_info: str | None = None,
    registry: SolverRegistry | None = None,
    provider: ConstantsProvider | None = None,
) -> SecurityCode:
    """Solve one challenge with the configured transport, constants and solvers."""
    solver = (registry or default_registry()).get(risk_type)
    constants = (provider or default_provider()).fetch()
    async with GeetestTransport() as transport:
        session = VerificationSession(
            transport, constants, captcha_id, risk_type, solver, user_info=user_info
        )
        return await session.run()
