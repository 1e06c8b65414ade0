from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema
from jsonschema.protocols import Validator

from .commands import NoticeCmd, normalize_cmd
from .errors import ErrorCode, ProtocolError

SCHEMA_DIR = Path(__file__).parent / "schemas"

BASE_SCHEMA = "notification.json"
HANDSHAKE_SCHEMA = "handshake.json"

# Mapping notification cmd -> schema filename (relative to SCHEMA_DIR)
SCHEMA_REGISTRY: Dict[str, str] = {
    NoticeCmd.NOTICE_MSG.value: "notice_msg.json",
    NoticeCmd.PREPARING.value: "preparing.json",
    NoticeCmd.ROOM_CHANGE.value: "room_change.json",
}


@lru_cache(maxsize=16)
def _read_schema(filename: str) -> Optional[dict]:
    path = SCHEMA_DIR / filename
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fp:
        return json.load(fp)


@lru_cache(maxsize=16)
def _validator(filename: str) -> Optional[Validator]:
    """Checked once, then reused for every message."""
    schema = _read_schema(filename)
    if schema is None:
        return None
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def load_schema(cmd: str) -> Optional[dict]:
    """Load JSON schema for a notification command if present."""
    filename = SCHEMA_REGISTRY.get(normalize_cmd(cmd))
    if not filename:
        return None
    return _read_schema(filename)


def _validate(instance: Any, validator: Validator, what: str) -> None:
    try:
        validator.validate(instance)
    except jsonschema.ValidationError as exc:
        raise ProtocolError(ErrorCode.SCHEMA_MISMATCH, f"{what} failed schema validation: {exc.message}") from exc


def validate_notification(msg: Any, schema: Optional[dict] = None) -> None:
    """Check the envelope-free notification shape, then the cmd specific schema."""
    _validate(msg, _validator(BASE_SCHEMA), "Notification")
    if schema:
        cls = jsonschema.validators.validator_for(schema)
        _validate(msg, cls(schema), msg["cmd"])
        return
    filename = SCHEMA_REGISTRY.get(msg["cmd"])
    validator = _validator(filename) if filename else None
    if validator is not None:
        _validate(msg, validator, msg["cmd"])


def validate_handshake(body: Dict[str, Any]) -> None:
    _validate(body, _validator(HANDSHAKE_SCHEMA), "Handshake")


__all__ = ["load_schema", "validate_notification", "validate_handshake"]
