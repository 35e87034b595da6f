"""Verification state, per-submission outcomes and the final security code."""
from dataclasses import dataclass, replace
from enum import Enum

from gt4solver.models.challenge import ChallengeLoad


@dataclass(frozen=True)
class SecurityCode:
    captcha_id: str
    lot_number: str
    pass_token: str
    gen_time: str
    captcha_output: str


class Verdict(str, Enum):
    SUCCESS = "success"
    CONTINUE = "continue"
    FAILURE = "failure"


@dataclass(frozen=True)
class SubmissionOutcome:
    verdict: Verdict
    seccode: SecurityCode | None = None
    reason: str = ""
    lot_number: str | None = None
    payload: str | None = None
    process_token: str | None = None

    @classmethod
    def success(cls, seccode: SecurityCode) -> "SubmissionOutcome":
        return cls(verdict=Verdict.SUCCESS, seccode=seccode)

    @classmethod
    def proceed(
        cls,
        lot_number: str | None = None,
        payload: str | None = None,
        process_token: str | None = None,
    ) -> "SubmissionOutcome":
        return cls(
            verdict=Verdict.CONTINUE,
            lot_number=lot_number,
            payload=payload,
            process_token=process_token,
        )

    @classmethod
    def failure(cls, reason: str) -> "SubmissionOutcome":
        return cls(verdict=Verdict.FAILURE, reason=reason)


@dataclass(frozen=True)
class SessionState:
    """Retry state of one session. Replaced on every transition, never mutated."""
    load: ChallengeLoad
    attempt: int = 0

    def continued(self, outcome: SubmissionOutcome) -> "SessionState":
        updates = {
            name: value
            for name, value in (
                ("lot_number", outcome.lot_number),
                ("payload", outcome.payload),
                ("process_token", outcome.process_token),
            )
            if value is not None
        }
        return replace(self, load=replace(self.load, **updates))

    def submitted(self) -> "SessionState":
        return replace(self, attempt=self.attempt + 1)
