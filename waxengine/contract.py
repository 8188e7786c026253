"""Normalized scan facts exchanged between language packs and the engine.

Prefer :func:`scan_facts_from_json` when ingesting pack output from the wire.
:meth:`ScanFacts.from_dict` only checks the JSON shape and integer widths;
the ingest helper also rejects contract-invalid values and stale derived
counts. In-process producers can call :meth:`ScanFacts.validate` before
returning facts.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Callable, TypeVar

SCHEMA_VERSION = 1
"""Current JSON schema version for :class:`ScanFacts`."""

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1

MAX_PARSE_EXTRACT_MS = U32_MAX
"""Maximum parser/extraction duration accepted by the JSON contract."""

_NULLABLE_JSON_FIELDS: tuple[tuple[str, ...], ...] = (("metrics", "adoption_coverage_ratio"),)
_RATIO_TOLERANCE = 1e-12
_LANGUAGE_ID_PATTERN = re.compile(r"[a-z][a-z0-9-]*")
_RFC3339_PATTERN = re.compile(
    r"\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:[Zz]|[+-]\d{2}:\d{2})"
)

T = TypeVar("T")


class LanguageIdError(ValueError):
    """A language id is not a lowercase ASCII slug."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f'invalid language id "{value}"; expected lowercase ASCII slug [a-z][a-z0-9-]*'
        )


class LanguageId(str):
    """Validated lowercase ASCII slug identifying a language pack."""

    def __new__(cls, value: str) -> LanguageId:
        if not isinstance(value, str) or not _LANGUAGE_ID_PATTERN.fullmatch(value):
            raise LanguageIdError(str(value))
        return super().__new__(cls, value)


class ScanFactsError(Exception):
    """Base error for scan facts parsing and validation."""


class InvalidJsonError(ScanFactsError):
    """JSON could not be decoded into the scan facts contract."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"invalid ScanFacts JSON: {detail}")


class UnsupportedSchemaVersionError(ScanFactsError):
    """``schema_version`` did not match :data:`SCHEMA_VERSION`."""

    def __init__(self, found: int, supported: int = SCHEMA_VERSION) -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            f"unsupported ScanFacts schema_version {found}; engine supports {supported}"
        )


class ContractViolationError(ScanFactsError):
    """Facts decoded but violated the scan facts contract."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"invalid ScanFacts contract at {field}: {message}")


class ScanStatus(StrEnum):
    """Overall status for a language pack scan."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class MatchStatus(StrEnum):
    """Resolution status for a component usage site."""

    RESOLVED = "resolved"
    CANDIDATE = "candidate"
    UNRESOLVED = "unresolved"


class DiagnosticSeverity(StrEnum):
    """Diagnostic severity emitted by a language pack."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class LanguageMetadata:
    """Language pack metadata embedded in scan facts."""

    id: LanguageId
    version: str
    ecosystem: str
    parser_name: str
    parser_version: str


@dataclass
class SourceLocation:
    """Source location shared by facts and diagnostics."""

    file: str
    line: int
    column: int | None = None


@dataclass
class DesignSystemComponent:
    """Design-system component known to the language pack."""

    id: str
    symbol: str
    registry_symbol: str


@dataclass
class LocalComponent:
    """Repository-local component discovered by a language pack."""

    id: str
    symbol: str
    location: SourceLocation


@dataclass
class UsageSite:
    """Source usage site discovered by a language pack."""

    id: str
    location: SourceLocation
    symbol: str
    match_status: MatchStatus
    registry_symbol: str | None = None


@dataclass
class Diagnostic:
    """Diagnostic emitted by a language pack."""

    severity: DiagnosticSeverity
    code: str
    message: str
    location: SourceLocation | None = None


@dataclass
class Metrics:
    """Metrics associated with one language scan."""

    adoption_coverage_ratio: float | None
    parse_extract_ms: int
    files_scanned: int


@dataclass
class CountSummary:
    """Count summary derived from scan facts."""

    design_system_component_count: int = 0
    local_component_count: int = 0
    usage_site_count: int = 0
    resolved_count: int = 0
    candidate_count: int = 0


@dataclass
class ScanFacts:
    """Normalized facts emitted by one language pack scan."""

    schema_version: int
    language: LanguageMetadata
    snapshot_id: str
    scanned_at: datetime
    status: ScanStatus
    design_system_components: list[DesignSystemComponent] = field(default_factory=list)
    local_components: list[LocalComponent] = field(default_factory=list)
    usage_sites: list[UsageSite] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    metrics: Metrics = field(default_factory=lambda: Metrics(None, 0, 0))
    counts: CountSummary = field(default_factory=CountSummary)

    def validate(self) -> None:
        """Check non-derived fields and that counts and metrics match the facts."""
        validate_schema_version(self.schema_version)
        _require_non_empty("language.version", self.language.version)
        _require_non_empty("language.ecosystem", self.language.ecosystem)
        _require_non_empty("language.parser_name", self.language.parser_name)
        _require_non_empty("language.parser_version", self.language.parser_version)
        _require_non_empty("snapshot_id", self.snapshot_id)

        for index, component in enumerate(self.design_system_components):
            prefix = f"design_system_components[{index}]"
            _require_non_empty(f"{prefix}.id", component.id)
            _require_non_empty(f"{prefix}.symbol", component.symbol)
            _require_non_empty(f"{prefix}.registry_symbol", component.registry_symbol)

        for index, local in enumerate(self.local_components):
            prefix = f"local_components[{index}]"
            _require_non_empty(f"{prefix}.id", local.id)
            _require_non_empty(f"{prefix}.symbol", local.symbol)
            _validate_location(f"{prefix}.location", local.location)

        for index, site in enumerate(self.usage_sites):
            prefix = f"usage_sites[{index}]"
            _require_non_empty(f"{prefix}.id", site.id)
            _validate_location(f"{prefix}.location", site.location)
            _require_non_empty(f"{prefix}.symbol", site.symbol)
            _validate_usage_site_registry_symbol(prefix, site)

        for index, diagnostic in enumerate(self.diagnostics):
            prefix = f"diagnostics[{index}]"
            _require_non_empty(f"{prefix}.code", diagnostic.code)
            if diagnostic.location is not None:
                _validate_location(f"{prefix}.location", diagnostic.location)

        _validate_derived_values(self)

    def recompute_counts(self) -> None:
        """Recompute counts and adoption coverage from the fact collections."""
        counts, ratio = _derive_counts_and_ratio(self)
        self.metrics.adoption_coverage_ratio = ratio
        self.counts = counts

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation of these facts."""
        return {
            "schema_version": self.schema_version,
            "language": {
                "id": str(self.language.id),
                "version": self.language.version,
                "ecosystem": self.language.ecosystem,
                "parser_name": self.language.parser_name,
                "parser_version": self.language.parser_version,
            },
            "snapshot_id": self.snapshot_id,
            "scanned_at": _format_timestamp(self.scanned_at),
            "status": self.status.value,
            "design_system_components": [
                {
                    "id": component.id,
                    "symbol": component.symbol,
                    "registry_symbol": component.registry_symbol,
                }
                for component in self.design_system_components
            ],
            "local_components": [
                {
                    "id": local.id,
                    "symbol": local.symbol,
                    "location": _location_to_dict(local.location),
                }
                for local in self.local_components
            ],
            "usage_sites": [_usage_site_to_dict(site) for site in self.usage_sites],
            "diagnostics": [_diagnostic_to_dict(diag) for diag in self.diagnostics],
            "metrics": {
                "adoption_coverage_ratio": self.metrics.adoption_coverage_ratio,
                "parse_extract_ms": self.metrics.parse_extract_ms,
                "files_scanned": self.metrics.files_scanned,
            },
            "counts": {
                "design_system_component_count": self.counts.design_system_component_count,
                "local_component_count": self.counts.local_component_count,
                "usage_site_count": self.counts.usage_site_count,
                "resolved_count": self.counts.resolved_count,
                "candidate_count": self.counts.candidate_count,
            },
        }

    def to_json(self) -> str:
        """Serialize these facts to compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), allow_nan=False)

    @classmethod
    def from_dict(cls, data: Any) -> ScanFacts:
        """Decode facts from parsed JSON, checking shape and integer widths only."""
        return _decode_scan_facts(data, "")


@dataclass
class MergedScan:
    """Merged scan facts keyed by language id."""

    schema_version: int
    recorded_at: datetime
    languages: dict[LanguageId, ScanFacts] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation, languages sorted by id."""
        return {
            "schema_version": self.schema_version,
            "recorded_at": _format_timestamp(self.recorded_at),
            "languages": {
                str(language_id): self.languages[language_id].to_dict()
                for language_id in sorted(self.languages)
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> MergedScan:
        """Decode a merged scan from parsed JSON."""
        obj = _expect_object(data, "", {"schema_version", "recorded_at", "languages"})
        languages_value = _required(obj, "languages", "")
        if not isinstance(languages_value, dict):
            raise InvalidJsonError("invalid type at languages: expected an object")
        languages: dict[LanguageId, ScanFacts] = {}
        for key in sorted(languages_value):
            path = f"languages.{key}"
            languages[_decode_language_id(key, path)] = _decode_scan_facts(
                languages_value[key], path
            )
        return cls(
            schema_version=_decode_int(
                _required(obj, "schema_version", ""), "schema_version", U32_MAX
            ),
            recorded_at=_decode_timestamp(_required(obj, "recorded_at", ""), "recorded_at"),
            languages=languages,
        )


def validate_schema_version(version: int) -> None:
    """Raise :class:`UnsupportedSchemaVersionError` unless ``version`` is supported."""
    if version != SCHEMA_VERSION:
        raise UnsupportedSchemaVersionError(version, SCHEMA_VERSION)


def scan_facts_from_json(text: str) -> ScanFacts:
    """Decode scan facts from JSON text and validate the full contract."""
    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError, TypeError) as exc:
        raise InvalidJsonError(str(exc)) from exc
    _require_json_field(value, ("metrics", "adoption_coverage_ratio"))
    _reject_disallowed_nulls(value, [])
    facts = ScanFacts.from_dict(value)
    validate_schema_version(facts.schema_version)
    facts.validate()
    return facts


# --- wire decoding -------------------------------------------------------


def _reject_constant(name: str) -> Any:
    raise ValueError(f"unsupported JSON constant {name}")


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _where(path: str) -> str:
    return path or "$"


def _expect_object(value: Any, path: str, allowed: set[str]) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise InvalidJsonError(f"invalid type at {_where(path)}: expected an object")
    for key in value:
        if key not in allowed:
            raise InvalidJsonError(f"unknown field `{key}` at {_where(path)}")
    return value


def _required(obj: dict[str, Any], key: str, path: str) -> Any:
    if key not in obj:
        raise InvalidJsonError(f"missing field `{key}` at {_where(path)}")
    return obj[key]


def _optional(obj: dict[str, Any], key: str, decode: Callable[[Any], T]) -> T | None:
    value = obj.get(key)
    return None if value is None else decode(value)


def _decode_str(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise InvalidJsonError(f"invalid type at {path}: expected a string")
    return value


def _decode_int(value: Any, path: str, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidJsonError(f"invalid type at {path}: expected an unsigned integer")
    if not 0 <= value <= maximum:
        raise InvalidJsonError(f"invalid value at {path}: {value} is out of range")
    return value


def _decode_float(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidJsonError(f"invalid type at {path}: expected a number")
    try:
        return float(value)
    except OverflowError as exc:
        raise InvalidJsonError(f"invalid value at {path}: number out of range") from exc


def _decode_enum(enum_type: type[T], value: Any, path: str) -> T:
    try:
        return enum_type(value)  # type: ignore[call-arg]
    except ValueError as exc:
        raise InvalidJsonError(f"unknown variant {value!r} at {path}") from exc


def _decode_language_id(value: Any, path: str) -> LanguageId:
    try:
        return LanguageId(_decode_str(value, path))
    except LanguageIdError as exc:
        raise InvalidJsonError(f"{exc} at {path}") from exc


def _decode_timestamp(value: Any, path: str) -> datetime:
    text = _decode_str(value, path)
    if not _RFC3339_PATTERN.fullmatch(text):
        raise InvalidJsonError(f"invalid RFC 3339 timestamp at {path}: {text!r}")
    try:
        return datetime.fromisoformat(text.upper())
    except ValueError as exc:
        raise InvalidJsonError(f"invalid RFC 3339 timestamp at {path}: {text!r}") from exc


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


def _decode_location(value: Any, path: str) -> SourceLocation:
    obj = _expect_object(value, path, {"file", "line", "column"})
    return SourceLocation(
        file=_decode_str(_required(obj, "file", path), _join(path, "file")),
        line=_decode_int(_required(obj, "line", path), _join(path, "line"), U32_MAX),
        column=_optional(
            obj, "column", lambda v: _decode_int(v, _join(path, "column"), U32_MAX)
        ),
    )


def _decode_scan_facts(value: Any, path: str) -> ScanFacts:
    obj = _expect_object(
        value,
        path,
        {
            "schema_version",
            "language",
            "snapshot_id",
            "scanned_at",
            "status",
            "design_system_components",
            "local_components",
            "usage_sites",
            "diagnostics",
            "metrics",
            "counts",
        },
    )

    def sub(key: str) -> str:
        return _join(path, key)

    def items(key: str) -> list[tuple[str, Any]]:
        raw = _required(obj, key, path)
        if not isinstance(raw, list):
            raise InvalidJsonError(f"invalid type at {sub(key)}: expected an array")
        return [(f"{sub(key)}[{index}]", item) for index, item in enumerate(raw)]

    language_path = sub("language")
    language_obj = _expect_object(
        _required(obj, "language", path),
        language_path,
        {"id", "version", "ecosystem", "parser_name", "parser_version"},
    )
    language = LanguageMetadata(
        id=_decode_language_id(
            _required(language_obj, "id", language_path), _join(language_path, "id")
        ),
        **{
            key: _decode_str(
                _required(language_obj, key, language_path), _join(language_path, key)
            )
            for key in ("version", "ecosystem", "parser_name", "parser_version")
        },
    )

    design_system_components = []
    for item_path, item in items("design_system_components"):
        component = _expect_object(item, item_path, {"id", "symbol", "registry_symbol"})
        design_system_components.append(
            DesignSystemComponent(
                **{
                    key: _decode_str(
                        _required(component, key, item_path), _join(item_path, key)
                    )
                    for key in ("id", "symbol", "registry_symbol")
                }
            )
        )

    local_components = []
    for item_path, item in items("local_components"):
        local = _expect_object(item, item_path, {"id", "symbol", "location"})
        local_components.append(
            LocalComponent(
                id=_decode_str(_required(local, "id", item_path), _join(item_path, "id")),
                symbol=_decode_str(
                    _required(local, "symbol", item_path), _join(item_path, "symbol")
                ),
                location=_decode_location(
                    _required(local, "location", item_path), _join(item_path, "location")
                ),
            )
        )

    usage_sites = []
    for item_path, item in items("usage_sites"):
        site = _expect_object(
            item, item_path, {"id", "location", "symbol", "match_status", "registry_symbol"}
        )
        usage_sites.append(
            UsageSite(
                id=_decode_str(_required(site, "id", item_path), _join(item_path, "id")),
                location=_decode_location(
                    _required(site, "location", item_path), _join(item_path, "location")
                ),
                symbol=_decode_str(
                    _required(site, "symbol", item_path), _join(item_path, "symbol")
                ),
                match_status=_decode_enum(
                    MatchStatus,
                    _required(site, "match_status", item_path),
                    _join(item_path, "match_status"),
                ),
                registry_symbol=_optional(
                    site,
                    "registry_symbol",
                    lambda v, p=item_path: _decode_str(v, _join(p, "registry_symbol")),
                ),
            )
        )

    diagnostics = []
    for item_path, item in items("diagnostics"):
        diag = _expect_object(item, item_path, {"severity", "code", "message", "location"})
        diagnostics.append(
            Diagnostic(
                severity=_decode_enum(
                    DiagnosticSeverity,
                    _required(diag, "severity", item_path),
                    _join(item_path, "severity"),
                ),
                code=_decode_str(_required(diag, "code", item_path), _join(item_path, "code")),
                message=_decode_str(
                    _required(diag, "message", item_path), _join(item_path, "message")
                ),
                location=_optional(
                    diag,
                    "location",
                    lambda v, p=item_path: _decode_location(v, _join(p, "location")),
                ),
            )
        )

    metrics_path = sub("metrics")
    metrics_obj = _expect_object(
        _required(obj, "metrics", path),
        metrics_path,
        {"adoption_coverage_ratio", "parse_extract_ms", "files_scanned"},
    )
    metrics = Metrics(
        adoption_coverage_ratio=_optional(
            metrics_obj,
            "adoption_coverage_ratio",
            lambda v: _decode_float(v, _join(metrics_path, "adoption_coverage_ratio")),
        ),
        parse_extract_ms=_decode_int(
            _required(metrics_obj, "parse_extract_ms", metrics_path),
            _join(metrics_path, "parse_extract_ms"),
            U64_MAX,
        ),
        files_scanned=_decode_int(
            _required(metrics_obj, "files_scanned", metrics_path),
            _join(metrics_path, "files_scanned"),
            U32_MAX,
        ),
    )

    counts_path = sub("counts")
    count_keys = (
        "design_system_component_count",
        "local_component_count",
        "usage_site_count",
        "resolved_count",
        "candidate_count",
    )
    counts_obj = _expect_object(_required(obj, "counts", path), counts_path, set(count_keys))
    counts = CountSummary(
        **{
            key: _decode_int(
                _required(counts_obj, key, counts_path), _join(counts_path, key), U32_MAX
            )
            for key in count_keys
        }
    )

    return ScanFacts(
        schema_version=_decode_int(
            _required(obj, "schema_version", path), sub("schema_version"), U32_MAX
        ),
        language=language,
        snapshot_id=_decode_str(_required(obj, "snapshot_id", path), sub("snapshot_id")),
        scanned_at=_decode_timestamp(_required(obj, "scanned_at", path), sub("scanned_at")),
        status=_decode_enum(ScanStatus, _required(obj, "status", path), sub("status")),
        design_system_components=design_system_components,
        local_components=local_components,
        usage_sites=usage_sites,
        diagnostics=diagnostics,
        metrics=metrics,
        counts=counts,
    )


# --- wire encoding -------------------------------------------------------


def _location_to_dict(location: SourceLocation) -> dict[str, Any]:
    out: dict[str, Any] = {"file": location.file, "line": location.line}
    if location.column is not None:
        out["column"] = location.column
    return out


def _usage_site_to_dict(site: UsageSite) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": site.id,
        "location": _location_to_dict(site.location),
        "symbol": site.symbol,
        "match_status": site.match_status.value,
    }
    if site.registry_symbol is not None:
        out["registry_symbol"] = site.registry_symbol
    return out


def _diagnostic_to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    out: dict[str, Any] = {
        "severity": diagnostic.severity.value,
        "code": diagnostic.code,
        "message": diagnostic.message,
    }
    if diagnostic.location is not None:
        out["location"] = _location_to_dict(diagnostic.location)
    return out


# --- contract checks -----------------------------------------------------


def _require_json_field(value: Any, path: tuple[str, ...]) -> None:
    current = value
    for index, segment in enumerate(path):
        if not isinstance(current, dict) or segment not in current:
            raise ContractViolationError(".".join(path[: index + 1]), "field is required")
        current = current[segment]


def _reject_disallowed_nulls(value: Any, path: list[str]) -> None:
    if value is None:
        if tuple(path) in _NULLABLE_JSON_FIELDS:
            return
        raise ContractViolationError(
            _json_path(path), "explicit null is not allowed by the scan facts schema"
        )
    if isinstance(value, list):
        for index, item in enumerate(value):
            _reject_disallowed_nulls(item, [*path, str(index)])
    elif isinstance(value, dict):
        for key, child in value.items():
            _reject_disallowed_nulls(child, [*path, key])


def _json_path(path: list[str]) -> str:
    parts = ["$"]
    for segment in path:
        if segment.isascii() and segment.isdigit():
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}")
    return "".join(parts)


def _validate_location(prefix: str, location: SourceLocation) -> None:
    _require_non_empty(f"{prefix}.file", location.file)
    if location.line == 0:
        raise ContractViolationError(f"{prefix}.line", "line must be one-based")
    if location.column == 0:
        raise ContractViolationError(
            f"{prefix}.column", "column must be one-based when present"
        )


def _validate_usage_site_registry_symbol(prefix: str, site: UsageSite) -> None:
    field_name = f"{prefix}.registry_symbol"
    if site.match_status is MatchStatus.UNRESOLVED:
        if site.registry_symbol is not None:
            raise ContractViolationError(
                field_name, "registry_symbol must be absent for unresolved usage"
            )
        return
    if site.registry_symbol is None:
        raise ContractViolationError(
            field_name, "registry_symbol is required for resolved and candidate usage"
        )
    _require_non_empty(field_name, site.registry_symbol)


def _validate_derived_values(facts: ScanFacts) -> None:
    ratio_field = "metrics.adoption_coverage_ratio"
    if facts.metrics.parse_extract_ms > MAX_PARSE_EXTRACT_MS:
        raise ContractViolationError(
            "metrics.parse_extract_ms", "parse_extract_ms exceeds the JSON contract maximum"
        )

    expected_counts, expected_ratio = _derive_counts_and_ratio(facts)
    if facts.counts != expected_counts:
        raise ContractViolationError("counts", "count summary must match the emitted facts")

    actual = facts.metrics.adoption_coverage_ratio
    if actual is None:
        if expected_ratio is None:
            return
        raise ContractViolationError(
            ratio_field, "adoption coverage ratio is required when usage sites are present"
        )
    if not math.isfinite(actual):
        raise ContractViolationError(ratio_field, "adoption coverage ratio must be finite")
    if not 0.0 <= actual <= 1.0:
        raise ContractViolationError(
            ratio_field, "adoption coverage ratio must be between 0 and 1"
        )
    if expected_ratio is None:
        raise ContractViolationError(
            ratio_field,
            "adoption coverage ratio must be null when usage_site_count is zero",
        )
    if abs(actual - expected_ratio) > _RATIO_TOLERANCE:
        raise ContractViolationError(
            ratio_field,
            "adoption coverage ratio must equal resolved_count / usage_site_count",
        )


def _derive_counts_and_ratio(facts: ScanFacts) -> tuple[CountSummary, float | None]:
    statuses = [site.match_status for site in facts.usage_sites]
    resolved = _checked_count("counts.resolved_count", statuses.count(MatchStatus.RESOLVED))
    candidate = _checked_count(
        "counts.candidate_count", statuses.count(MatchStatus.CANDIDATE)
    )
    usage_site_count = _checked_count("counts.usage_site_count", len(facts.usage_sites))
    counts = CountSummary(
        design_system_component_count=_checked_count(
            "counts.design_system_component_count", len(facts.design_system_components)
        ),
        local_component_count=_checked_count(
            "counts.local_component_count", len(facts.local_components)
        ),
        usage_site_count=usage_site_count,
        resolved_count=resolved,
        candidate_count=candidate,
    )
    ratio = None if usage_site_count == 0 else resolved / usage_site_count
    return counts, ratio


def _checked_count(field_name: str, count: int) -> int:
    if count > U32_MAX:
        raise ContractViolationError(field_name, "count exceeds u32 maximum")
    return count


def _require_non_empty(field_name: str, value: str) -> None:
    if not value:
        raise ContractViolationError(field_name, "value must not be empty")