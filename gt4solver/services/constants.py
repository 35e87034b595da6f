"""Constants providers: versioned mapping/auxiliary/device_id for the payload."""
import json
import logging
from pathlib import Path
from typing import Protocol

from gt4solver.config import settings
from gt4solver.errors import DeobfuscationError, MappingFormatError
from gt4solver.models.challenge import Constants
from gt4solver.protocol.lot_parser import LotParser

logger = logging.getLogger(__name__)


class ConstantsProvider(Protocol):
    def fetch(self) -> Constants: ...


def _check_mapping(mapping: str) -> None:
    try:
        LotParser.compile(mapping)
    except MappingFormatError as exc:
        raise DeobfuscationError(f"Unusable mapping: {exc}") from exc


class StaticConstantsProvider:
    def __init__(self, mapping: str, auxiliary: dict[str, str] | None = None, device_id: str = ""):
        self._constants = Constants(
            mapping=mapping,
            auxiliary=dict(auxiliary or {}),
            device_id=device_id,
        )

    def fetch(self) -> Constants:
        if not self._constants.mapping.strip():
            raise DeobfuscationError("No mapping configured")
        _check_mapping(self._constants.mapping)
        return self._constants


class CachedConstantsProvider:
    """
    Reads the constants cache written by the script deobfuscator:
    {"version": ..., "fetched_at": ..., "mapping": ..., "abo": {...}, "device_id": ...}.
    The file is re-read on every fetch so an external refresher can replace it.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def fetch(self) -> Constants:
        try:
            cached = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise DeobfuscationError(f"Constants cache not found: {self.path}") from None
        except (OSError, json.JSONDecodeError) as exc:
            raise DeobfuscationError(f"Unreadable constants cache {self.path}: {exc}") from exc

        mapping = cached.get("mapping")
        abo = cached.get("abo", {})
        if not isinstance(mapping, str) or not mapping:
            raise DeobfuscationError("Constants cache has no mapping")
        if not isinstance(abo, dict):
            raise DeobfuscationError("Constants cache abo is not an object")
        _check_mapping(mapping)

        logger.debug("Loaded constants version=%s from %s", cached.get("version"), self.path)
        return Constants(
            mapping=mapping,
            auxiliary={str(k): str(v) for k, v in abo.items()},
            device_id=str(cached.get("device_id") or ""),
        )


def default_provider() -> ConstantsProvider:
    if settings.constants_file:
        logger.info("Using constants cache %s", settings.constants_file)
        return CachedConstantsProvider(settings.constants_file)
    if not settings.has_static_constants:
        logger.warning("No GT4_CONSTANTS_FILE or GT4_MAPPING configured")
    return StaticConstantsProvider(settings.mapping, settings.auxiliary, settings.device_id)
