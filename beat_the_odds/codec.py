"""Tamper-evident save envelope.

A save is stored as JSON `{"payload": <base64 of the model JSON>, "hash": <hmac>}`.
The hash is an HMAC-SHA256 keyed with a fixed salt over the pre-encoded bytes.
It catches accidental corruption and casual edits; it is not a security boundary.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_SALT = "beat-the-odds-v1"


class SaveImportError(ValueError):
    """A foreign save could not be used. The message is shown to the player."""


def _hash(data: bytes, *, salt: str) -> str:
    return hmac.new(salt.encode("utf-8"), data, hashlib.sha256).hexdigest()


def encode(model: BaseModel, *, salt: str = DEFAULT_SALT) -> str:
    raw = model.model_dump_json(by_alias=True).encode("utf-8")
    envelope = {
        "payload": base64.b64encode(raw).decode("ascii"),
        "hash": _hash(raw, salt=salt),
    }
    return json.dumps(envelope, separators=(",", ":"))


def _is_envelope(doc: Any) -> bool:
    return isinstance(doc, dict) and "payload" in doc and "hash" in doc


def _open_envelope(doc: dict[str, Any], *, salt: str) -> bytes | None:
    payload = doc.get("payload")
    stored = doc.get("hash")
    if not isinstance(payload, str) or not isinstance(stored, str):
        return None
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None
    # Reject non-canonical encodings so an edited payload never decodes to the same bytes.
    if base64.b64encode(raw).decode("ascii") != payload:
        return None
    if not hmac.compare_digest(_hash(raw, salt=salt), stored):
        return None
    return raw


def decode(raw: str | bytes | None, model_cls: type[M], *, salt: str = DEFAULT_SALT) -> M:
    """Decode a stored save, or return defaults.

    Envelopes must verify. Legacy saves (plain JSON without the envelope) are
    parsed directly and missing fields are backfilled by the model defaults.
    A save that fails either path is discarded.
    """

    if not raw:
        return model_cls()
    try:
        doc = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unreadable %s save", model_cls.__name__)
        return model_cls()

    if _is_envelope(doc):
        body = _open_envelope(doc, salt=salt)
        if body is None:
            logger.warning("Discarding %s save: integrity check failed", model_cls.__name__)
            return model_cls()
        try:
            return model_cls.model_validate_json(body)
        except ValidationError:
            logger.warning("Discarding %s save: payload does not match schema", model_cls.__name__)
            return model_cls()

    try:
        return model_cls.model_validate(doc)
    except ValidationError:
        logger.warning("Discarding legacy %s save: does not match schema", model_cls.__name__)
        return model_cls()


def import_save(text: str, model_cls: type[M], *, salt: str = DEFAULT_SALT) -> M:
    """Strict variant of `decode` for saves pasted/uploaded by the player."""

    try:
        doc = json.loads(text)
    except ValueError as e:
        raise SaveImportError("That doesn't look like a save file.") from e

    if _is_envelope(doc):
        body = _open_envelope(doc, salt=salt)
        if body is None:
            raise SaveImportError("This save has been modified or is corrupted.")
        try:
            return model_cls.model_validate_json(body)
        except ValidationError as e:
            raise SaveImportError("This save is from an incompatible version.") from e

    if not isinstance(doc, dict) or "money" not in doc or "upgrades" not in doc:
        raise SaveImportError("That doesn't look like a save file.")
    try:
        return model_cls.model_validate(doc)
    except ValidationError as e:
        raise SaveImportError("This save is from an incompatible version.") from e
