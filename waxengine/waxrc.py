"""Repository configuration loaded from ``.waxrc``."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

from .contract import U32_MAX, LanguageId, LanguageIdError

WAXRC_SCHEMA_VERSION = 1
"""Current ``.waxrc`` schema version supported by this engine."""

DEFAULT_SCAN_CONCURRENCY = 2
"""Scan concurrency used when ``.waxrc`` does not set one."""


@dataclass
class EngineConfig:
    """Engine-owned ``.waxrc`` settings."""

    scan_concurrency: int = DEFAULT_SCAN_CONCURRENCY


@dataclass
class LanguageEntry:
    """Per-language ``.waxrc`` entry; unknown keys are kept opaque in ``extra``."""

    id: LanguageId
    enabled: bool
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class WaxRc:
    """Repository-level configuration loaded from ``.waxrc``."""

    schema_version: int
    languages: list[LanguageEntry]
    engine: EngineConfig = field(default_factory=EngineConfig)


class WaxRcError(Exception):
    """Base error raised while loading ``.waxrc``."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class WaxRcReadError(WaxRcError):
    """The file could not be read from disk."""

    def __init__(self, path: str, source: Exception) -> None:
        self.source = source
        super().__init__(path, f"failed to read .waxrc from {path}: {source}")


class MalformedWaxRcError(WaxRcError):
    """The file is not syntactically valid JSON."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"malformed .waxrc JSON in {path}: {detail}")


class InvalidWaxRcError(WaxRcError):
    """The JSON is valid but does not match the supported config shape."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"invalid .waxrc config in {path}: {detail}")


class UnsupportedWaxRcSchemaError(WaxRcError):
    """The file uses a schema version this engine does not understand."""

    def __init__(self, path: str, found: int, supported: int = WAXRC_SCHEMA_VERSION) -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            path,
            f"unsupported .waxrc schema_version {found} in {path}; "
            f"this engine supports {supported}",
        )


def load_waxrc(path: str | PathLike[str]) -> WaxRc:
    """Load and validate a ``.waxrc`` JSON file from disk."""
    path_display = str(path)
    try:
        contents = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise WaxRcReadError(path_display, exc) from exc

    try:
        value = json.loads(contents, parse_constant=_reject_constant)
    except ValueError as exc:
        raise MalformedWaxRcError(path_display, str(exc)) from exc

    try:
        version = _schema_version(value)
    except _ShapeError as exc:
        raise InvalidWaxRcError(path_display, str(exc)) from exc
    if version != WAXRC_SCHEMA_VERSION:
        raise UnsupportedWaxRcSchemaError(path_display, version, WAXRC_SCHEMA_VERSION)

    try:
        return _decode_waxrc(value)
    except _ShapeError as exc:
        raise InvalidWaxRcError(path_display, str(exc)) from exc


class _ShapeError(ValueError):
    """Parsed JSON does not have the expected shape."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"unsupported JSON constant {name}")


def _expect_object(value: Any, where: str, allowed: set[str] | None = None) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise _ShapeError(f"invalid type at {where}: expected an object")
    if allowed is not None:
        for key in value:
            if key not in allowed:
                raise _ShapeError(f"unknown field `{key}` at {where}")
    return value


def _required(obj: dict[str, Any], key: str, where: str) -> Any:
    if key not in obj:
        raise _ShapeError(f"missing field `{key}` at {where}")
    return obj[key]


def _u32(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _ShapeError(f"invalid type at {where}: expected an unsigned integer")
    if not 0 <= value <= U32_MAX:
        raise _ShapeError(f"invalid value at {where}: {value} is out of range")
    return value


def _schema_version(value: Any) -> int:
    obj = _expect_object(value, "$")
    return _u32(_required(obj, "schema_version", "$"), "schema_version")


def _decode_engine(value: Any) -> EngineConfig:
    obj = _expect_object(value, "engine", {"scan_concurrency"})
    if "scan_concurrency" not in obj:
        return EngineConfig()
    return EngineConfig(
        scan_concurrency=_u32(obj["scan_concurrency"], "engine.scan_concurrency")
    )


def _decode_language(value: Any, where: str) -> LanguageEntry:
    obj = _expect_object(value, where)
    raw_id = _required(obj, "id", where)
    if not isinstance(raw_id, str):
        raise _ShapeError(f"invalid type at {where}.id: expected a string")
    try:
        language_id = LanguageId(raw_id)
    except LanguageIdError as exc:
        raise _ShapeError(f"{exc} at {where}.id") from exc
    enabled = _required(obj, "enabled", where)
    if not isinstance(enabled, bool):
        raise _ShapeError(f"invalid type at {where}.enabled: expected a boolean")
    extra = {key: item for key, item in obj.items() if key not in ("id", "enabled")}
    return LanguageEntry(id=language_id, enabled=enabled, extra=extra)


def _decode_waxrc(value: Any) -> WaxRc:
    obj = _expect_object(value, "$", {"schema_version", "engine", "languages"})
    schema_version = _u32(_required(obj, "schema_version", "$"), "schema_version")
    engine = _decode_engine(obj["engine"]) if "engine" in obj else EngineConfig()
    raw_languages = _required(obj, "languages", "$")
    if not isinstance(raw_languages, list):
        raise _ShapeError("invalid type at languages: expected an array")
    languages = [
        _decode_language(item, f"languages[{index}]")
        for index, item in enumerate(raw_languages)
    ]
    return WaxRc(schema_version=schema_version, languages=languages, engine=engine)