"""httpx transport for the /load and /verify JSONP endpoints."""
import json
import logging
import random
import time
import uuid

import httpx
from pydantic import ValidationError

from gt4solver.config import settings
from gt4solver.errors import MalformedResponseError
from gt4solver.models.challenge import ChallengeLoad, RiskType
from gt4solver.models.wire import Envelope, LoadBody, VerifyBody

logger = logging.getLogger(__name__)


def random_callback() -> str:
    """geetest_<epoch ms + random 0..9999>, as the vendor script names its callbacks."""
    return f"geetest_{int(time.time() * 1000) + int(random.random() * 10000)}"


def parse_jsonp(text: str, callback: str):
    """Unwrap `callback({...})` and return the envelope's data when status is success."""
    prefix = f"{callback}("
    start = text.find(prefix)
    end = text.rfind(")")
    if start == -1 or end < start + len(prefix):
        logger.error("Invalid JSONP response: %s", text[:200])
        raise MalformedResponseError("Invalid JSONP format")

    try:
        envelope = Envelope.model_validate(json.loads(text[start + len(prefix):end]))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise MalformedResponseError(f"Invalid JSONP body: {exc}") from exc

    if envelope.status != "success":
        raise MalformedResponseError(f"Geetest returned status: {envelope.status}")
    return envelope.data


class GeetestTransport:
    """
    One HTTP client per solver. `challenge` is a random UUID per instance,
    like a fresh page load of the vendor widget.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            timeout=settings.http_timeout_s,
            proxy=settings.proxy or None,
        )
        self.challenge = str(uuid.uuid4())

    async def __aenter__(self) -> "GeetestTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_jsonp(self, url: str, params: dict):
        response = await self._client.get(url, params=params)
        response.raise_for_status()
        return parse_jsonp(response.text, params["callback"])

    async def load(
        self,
        captcha_id: str,
        risk_type: RiskType,
        user_info: str | None = None,
    ) -> ChallengeLoad:
        params = {
            "captcha_id": captcha_id,
            "challenge": self.challenge,
            "client_type": "web",
            "risk_type": risk_type.value,
            "lang": settings.lang,
            "callback": random_callback(),
        }
        if user_info is not None:
            params["user_info"] = user_info

        data = await self._get_jsonp(f"{settings.api_base_url}/load", params)
        try:
            return LoadBody.model_validate(data).to_load()
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid load response: {exc}") from exc

    async def verify(
        self,
        captcha_id: str,
        risk_type: RiskType,
        load: ChallengeLoad,
        w: str,
    ) -> VerifyBody:
        params = {
            "callback": random_callback(),
            "captcha_id": captcha_id,
            "client_type": "web",
            "lot_number": load.lot_number,
            "risk_type": risk_type.value,
            "payload": load.payload,
            "process_token": load.process_token,
            "payload_protocol": "1",
            "pt": "1",
            "w": w,
        }
        data = await self._get_jsonp(f"{settings.api_base_url}/verify", params)
        try:
            return VerifyBody.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid verify response: {exc}") from exc

    async def download_image(self, path: str) -> bytes:
        response = await self._client.get(f"{settings.static_base_url}/{path.lstrip('/')}")
        response.raise_for_status()
        return response.content
