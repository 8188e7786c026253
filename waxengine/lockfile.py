"""``wax.lock.json`` repository lockfile parsing and consistency checks."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from os import PathLike
from pathlib import Path
from typing import Any

from .contract import U32_MAX, LanguageId, LanguageIdError
from .waxrc import WaxRc

WAX_LOCK_SCHEMA_VERSION = 1
"""Current ``wax.lock.json`` schema version supported by this engine."""

_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)


@dataclass
class SignatureRef:
    """Reserved reference to signature metadata for a resolved artifact."""

    kind: str
    bundle: Any


@dataclass
class ResolvedLanguage:
    """Resolved artifact metadata for the machine that produced the lockfile."""

    target: str
    url: str
    sha256: str
    signature: SignatureRef | None = None


@dataclass
class LockedLanguage:
    """Lockfile entry for one resolved language pack."""

    version: str
    api_version: int
    source: str
    resolved: ResolvedLanguage


@dataclass
class WaxLock:
    """Repository lockfile pinning the language pack artifacts for a repo."""

    schema_version: int
    engine_api_version: int
    wax_version: str
    languages: dict[LanguageId, LockedLanguage] = field(default_factory=dict)
    locked_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> WaxLock:
        """Decode a lockfile from parsed JSON; raises ``ValueError`` on a bad shape."""
        obj = _expect_object(
            data,
            "$",
            {"schema_version", "engine_api_version", "wax_version", "locked_at", "languages"},
        )
        raw_languages = _expect_object(_required(obj, "languages", "$"), "languages")
        languages: dict[LanguageId, LockedLanguage] = {}
        for key in sorted(raw_languages):
            where = f"languages.{key}"
            try:
                language_id = LanguageId(key)
            except LanguageIdError as exc:
                raise _ShapeError(f"{exc} at {where}") from exc
            languages[language_id] = _decode_locked(raw_languages[key], where)
        locked_at_raw = obj.get("locked_at")
        return cls(
            schema_version=_u32(_required(obj, "schema_version", "$"), "schema_version"),
            engine_api_version=_u32(
                _required(obj, "engine_api_version", "$"), "engine_api_version"
            ),
            wax_version=_str(_required(obj, "wax_version", "$"), "wax_version"),
            languages=languages,
            locked_at=None
            if locked_at_raw is None
            else _parse_timestamp(locked_at_raw, "locked_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation, languages sorted by id."""
        return {
            "schema_version": self.schema_version,
            "engine_api_version": self.engine_api_version,
            "wax_version": self.wax_version,
            "locked_at": None if self.locked_at is None else _format_timestamp(self.locked_at),
            "languages": {
                str(language_id): _locked_to_dict(self.languages[language_id])
                for language_id in sorted(self.languages)
            },
        }


@dataclass
class WaxLockLanguageReport:
    """Mismatch between enabled ``.waxrc`` languages and lockfile entries."""

    missing_enabled_languages: set[LanguageId] = field(default_factory=set)
    stale_locked_languages: set[LanguageId] = field(default_factory=set)


class LockfileError(Exception):
    """Base error raised while loading ``wax.lock.json``."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class LockfileReadError(LockfileError):
    """The file could not be read from disk."""

    def __init__(self, path: str, source: Exception) -> None:
        self.source = source
        super().__init__(path, f"failed to read wax.lock.json from {path}: {source}")


class MalformedLockfileError(LockfileError):
    """The file is not syntactically valid JSON."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"malformed wax.lock.json in {path}: {detail}")


class InvalidLockfileError(LockfileError):
    """The JSON is valid but does not match the supported lockfile shape."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"invalid wax.lock.json config in {path}: {detail}")


class UnsupportedLockfileSchemaError(LockfileError):
    """The file uses a schema version this engine does not understand."""

    def __init__(self, path: str, found: int, supported: int = WAX_LOCK_SCHEMA_VERSION) -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            path,
            f"unsupported wax.lock.json schema_version {found} in {path}; "
            f"this engine supports {supported}",
        )


def load_lockfile(path: str | PathLike[str]) -> WaxLock:
    """Load and validate a ``wax.lock.json`` file from disk."""
    path_display = str(path)
    try:
        contents = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LockfileReadError(path_display, exc) from exc

    try:
        value = json.loads(contents, parse_constant=_reject_constant)
    except ValueError as exc:
        raise MalformedLockfileError(path_display, str(exc)) from exc

    try:
        obj = _expect_object(value, "$")
        version = _u32(_required(obj, "schema_version", "$"), "schema_version")
    except _ShapeError as exc:
        raise InvalidLockfileError(path_display, str(exc)) from exc
    if version != WAX_LOCK_SCHEMA_VERSION:
        raise UnsupportedLockfileSchemaError(path_display, version, WAX_LOCK_SCHEMA_VERSION)

    try:
        return WaxLock.from_dict(value)
    except ValueError as exc:
        raise InvalidLockfileError(path_display, str(exc)) from exc


def check_waxrc_lockfile_languages(waxrc: WaxRc, lockfile: WaxLock) -> WaxLockLanguageReport:
    """Compare enabled ``.waxrc`` language ids with the ids pinned in a lockfile."""
    enabled = {entry.id for entry in waxrc.languages if entry.enabled}
    locked = set(lockfile.languages)
    return WaxLockLanguageReport(
        missing_enabled_languages=enabled - locked,
        stale_locked_languages=locked - enabled,
    )


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


def _str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise _ShapeError(f"invalid type at {where}: expected a string")
    return value


def _u32(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _ShapeError(f"invalid type at {where}: expected an unsigned integer")
    if not 0 <= value <= U32_MAX:
        raise _ShapeError(f"invalid value at {where}: {value} is out of range")
    return value


def _decode_signature(value: Any, where: str) -> SignatureRef:
    obj = _expect_object(value, where, {"type", "bundle"})
    return SignatureRef(
        kind=_str(_required(obj, "type", where), f"{where}.type"),
        bundle=_required(obj, "bundle", where),
    )


def _decode_locked(value: Any, where: str) -> LockedLanguage:
    obj = _expect_object(value, where, {"version", "api_version", "source", "resolved"})
    resolved_where = f"{where}.resolved"
    resolved = _expect_object(
        _required(obj, "resolved", where),
        resolved_where,
        {"target", "url", "sha256", "signature"},
    )
    signature_raw = resolved.get("signature")
    return LockedLanguage(
        version=_str(_required(obj, "version", where), f"{where}.version"),
        api_version=_u32(_required(obj, "api_version", where), f"{where}.api_version"),
        source=_str(_required(obj, "source", where), f"{where}.source"),
        resolved=ResolvedLanguage(
            target=_str(_required(resolved, "target", resolved_where), f"{resolved_where}.target"),
            url=_str(_required(resolved, "url", resolved_where), f"{resolved_where}.url"),
            sha256=_str(_required(resolved, "sha256", resolved_where), f"{resolved_where}.sha256"),
            signature=None
            if signature_raw is None
            else _decode_signature(signature_raw, f"{resolved_where}.signature"),
        ),
    )


def _locked_to_dict(locked: LockedLanguage) -> dict[str, Any]:
    signature = locked.resolved.signature
    return {
        "version": locked.version,
        "api_version": locked.api_version,
        "source": locked.source,
        "resolved": {
            "target": locked.resolved.target,
            "url": locked.resolved.url,
            "sha256": locked.resolved.sha256,
            "signature": None
            if signature is None
            else {"type": signature.kind, "bundle": signature.bundle},
        },
    }


def _parse_timestamp(value: Any, where: str) -> datetime:
    text = _str(value, where)
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise _ShapeError(f"invalid RFC 3339 timestamp at {where}: {text!r}")
    base, fraction, offset = match.groups()
    iso = base.upper()
    if fraction:
        iso += "." + (fraction + "000000")[:6]
    iso += "+00:00" if offset.upper() == "Z" else offset
    try:
        return datetime.fromisoformat(iso)
    except ValueError as exc:
        raise _ShapeError(f"invalid RFC 3339 timestamp at {where}: {text!r}") from exc


def _format_timestamp(moment: datetime) -> str:
    offset = moment.utcoffset()
    if offset is None:
        raise ValueError("timestamps must be timezone-aware")
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    if offset == timedelta(0):
        return text + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, remainder = divmod(abs(total), 3600)
    return f"{text}{sign}{hours:02d}:{remainder // 60:02d}"