"""Pydantic models for the /load and /verify JSONP bodies."""
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from gt4solver.models.challenge import ChallengeLoad, PowDetail
from gt4solver.models.session import SecurityCode


def _string_or_int(v):
    """The vendor sends some fields as either strings or integers."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, bool):
        raise ValueError("expected a string or integer")
    if isinstance(v, int):
        return str(v)
    raise ValueError("expected a string or integer")


class Envelope(BaseModel):
    status: str
    data: Any = None


class PowDetailBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hashfunc: str
    version: str
    bits: int
    datetime: str


class LoadBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lot_number: str
    payload: str
    process_token: str
    pt: str = ""
    pow_detail: PowDetailBody
    slice: str | None = None
    bg: str | None = None
    ques: Any = None
    imgs: str | None = None

    @field_validator("pt", mode="before")
    @classmethod
    def normalize_pt(cls, v):
        return _string_or_int(v) or ""

    def to_load(self) -> ChallengeLoad:
        detail = self.pow_detail
        return ChallengeLoad(
            lot_number=self.lot_number,
            payload=self.payload,
            process_token=self.process_token,
            protocol_type=self.pt,
            pow_detail=PowDetail(
                hashfunc=detail.hashfunc,
                version=detail.version,
                bits=detail.bits,
                datetime=detail.datetime,
            ),
            slice=self.slice,
            bg=self.bg,
            ques=self.ques,
            imgs=self.imgs,
        )


class SeccodeBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    captcha_id: str
    lot_number: str
    pass_token: str
    gen_time: str
    captcha_output: str

    @field_validator("gen_time", mode="before")
    @classmethod
    def normalize_gen_time(cls, v):
        return _string_or_int(v)

    def to_seccode(self) -> SecurityCode:
        return SecurityCode(**self.model_dump())


class VerifyBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    seccode: SeccodeBody | None = None
    result: str | None = None
    score: str | None = None
    payload: str | None = None
    process_token: str | None = None
    payload_protocol: str | None = None
    lot_number: str | None = None

    @field_validator(
        "score", "payload", "process_token", "payload_protocol", "lot_number",
        mode="before",
    )
    @classmethod
    def normalize_string_or_int(cls, v):
        return _string_or_int(v)
