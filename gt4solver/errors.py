"""Exception hierarchy. Transport errors are httpx's own and are not wrapped."""


class GT4Error(Exception):
    """Base class for every error raised by gt4solver."""


class MalformedResponseError(GT4Error):
    """JSONP envelope unparsable, non-success status, or a required field missing."""


class EncryptionModeError(GT4Error):
    pass


class UnsupportedHashError(GT4Error):
    pass


class PowBudgetError(GT4Error):
    pass


class PowCancelled(GT4Error):
    pass


class MappingFormatError(GT4Error):
    pass


class DeobfuscationError(GT4Error):
    """The constants provider could not produce mapping/auxiliary/device_id."""


class SolverError(GT4Error):
    pass


class MissingChallengeField(SolverError):
    def __init__(self, field: str, risk_type: str):
        super().__init__(f"Missing {field} for {risk_type} captcha")
        self.field = field
        self.risk_type = risk_type


class PuzzleUnsolved(SolverError):
    pass


class UnsupportedRiskType(SolverError):
    pass


class VerificationFailed(GT4Error):
    def __init__(self, reason: str):
        super().__init__(f"Captcha verification failed: {reason}")
        self.reason = reason


class MaxRetriesExceeded(GT4Error):
    def __init__(self, attempts: int):
        super().__init__(f"Max retries ({attempts}) exceeded")
        self.attempts = attempts
