"""Global engine state persisted outside individual repositories."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from pathlib import Path
from typing import Any

from .contract import LanguageId, LanguageIdError

_TEMP_ATTEMPTS = 1000


@dataclass
class InstalledLanguagePack:
    """Metadata for one installed language pack."""

    install_dir: Path


@dataclass
class GlobalState:
    """Global state stored at ``~/.wax/state.json``."""

    installed_languages: dict[LanguageId, dict[str, InstalledLanguagePack]] = field(
        default_factory=dict
    )

    @classmethod
    def from_dict(cls, data: Any) -> GlobalState:
        """Decode state from parsed JSON; raises ``ValueError`` on a bad shape."""
        obj = _expect_object(data, "$", {"installed_languages"})
        raw_languages = obj.get("installed_languages", {})
        languages = _expect_object(raw_languages, "installed_languages")
        installed: dict[LanguageId, dict[str, InstalledLanguagePack]] = {}
        for key in sorted(languages):
            where = f"installed_languages.{key}"
            try:
                language_id = LanguageId(key)
            except LanguageIdError as exc:
                raise _ShapeError(f"{exc} at {where}") from exc
            versions = _expect_object(languages[key], where)
            installed[language_id] = {
                version: _decode_pack(versions[version], f"{where}.{version}")
                for version in sorted(versions)
            }
        return cls(installed_languages=installed)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation with keys in sorted order."""
        return {
            "installed_languages": {
                str(language_id): {
                    version: {"install_dir": str(pack.install_dir)}
                    for version, pack in sorted(self.installed_languages[language_id].items())
                }
                for language_id in sorted(self.installed_languages)
            }
        }


class GlobalStateError(Exception):
    """Base error raised while loading or saving global state."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class GlobalStateReadError(GlobalStateError):
    """The state file could not be read from disk."""

    def __init__(self, path: str, source: Exception) -> None:
        self.source = source
        super().__init__(path, f"failed to read wax global state from {path}: {source}")


class MalformedGlobalStateError(GlobalStateError):
    """The state file is not syntactically valid JSON."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"malformed wax global state JSON in {path}: {detail}")


class InvalidGlobalStateError(GlobalStateError):
    """The JSON is valid but does not match the supported state shape."""

    def __init__(self, path: str, detail: str) -> None:
        self.detail = detail
        super().__init__(path, f"invalid wax global state in {path}: {detail}")


class WriteStage(Enum):
    """Step of an atomic state write that failed."""

    CREATE_DIR = "create_dir"
    CREATE_TEMP = "create_temp"
    WRITE_TEMP = "write_temp"
    SYNC_TEMP = "sync_temp"
    RENAME = "rename"


class GlobalStateWriteError(GlobalStateError):
    """The state file could not be written atomically."""

    def __init__(
        self,
        path: str,
        stage: WriteStage,
        source: Exception,
        temp_path: str | None = None,
    ) -> None:
        self.stage = stage
        self.source = source
        self.temp_path = temp_path
        messages = {
            WriteStage.CREATE_DIR: f"failed to create wax global state directory for {path}",
            WriteStage.CREATE_TEMP: (
                f"failed to create temporary wax global state file {temp_path} for {path}"
            ),
            WriteStage.WRITE_TEMP: (
                f"failed to write temporary wax global state file {temp_path} for {path}"
            ),
            WriteStage.SYNC_TEMP: (
                f"failed to sync temporary wax global state file {temp_path} for {path}"
            ),
            WriteStage.RENAME: f"failed to replace wax global state {path} with {temp_path}",
        }
        super().__init__(path, f"{messages[stage]}: {source}")


class InvalidVersionError(GlobalStateError):
    """A state entry uses a pack version that is not a single path segment."""

    def __init__(self, path: str, language_id: LanguageId, version: str) -> None:
        self.language_id = language_id
        self.version = version
        super().__init__(
            path,
            f"invalid wax global state in {path}: language {language_id} "
            f"has invalid version path component {json.dumps(version)}",
        )


def validate_version_segment(version: str) -> str:
    """Return ``version`` if it is usable as one path segment, else raise ``ValueError``."""
    if (
        not version
        or version in (".", "..")
        or any(ch in version for ch in ("/", "\\", "\0"))
    ):
        raise ValueError(f"invalid version path component {json.dumps(version)}")
    return version


def load_global_state(path: str | PathLike[str]) -> GlobalState:
    """Load global state; a missing file yields empty state."""
    path_display = os.fspath(path)
    try:
        contents = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return GlobalState()
    except (OSError, UnicodeDecodeError) as exc:
        raise GlobalStateReadError(path_display, exc) from exc

    try:
        value = json.loads(contents, parse_constant=_reject_constant)
    except ValueError as exc:
        raise MalformedGlobalStateError(path_display, str(exc)) from exc

    try:
        state = GlobalState.from_dict(value)
    except ValueError as exc:
        raise InvalidGlobalStateError(path_display, str(exc)) from exc
    _validate_versions(state, path_display)
    return state


def save_global_state(path: str | PathLike[str], state: GlobalState) -> None:
    """Atomically write global state, creating parent directories when needed."""
    target = Path(path)
    path_display = os.fspath(path)
    _validate_versions(state, path_display)

    parent = target.parent
    if str(parent) not in ("", "."):
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise GlobalStateWriteError(path_display, WriteStage.CREATE_DIR, exc) from exc

    contents = json.dumps(state.to_dict(), indent=2) + "\n"
    _write_atomically(target, path_display, contents.encode("utf-8"))


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


def _decode_pack(value: Any, where: str) -> InstalledLanguagePack:
    obj = _expect_object(value, where, {"install_dir"})
    if "install_dir" not in obj:
        raise _ShapeError(f"missing field `install_dir` at {where}")
    install_dir = obj["install_dir"]
    if not isinstance(install_dir, str):
        raise _ShapeError(f"invalid type at {where}.install_dir: expected a string")
    return InstalledLanguagePack(install_dir=Path(install_dir))


def _validate_versions(state: GlobalState, path_display: str) -> None:
    for language_id, versions in state.installed_languages.items():
        for version in versions:
            try:
                validate_version_segment(version)
            except ValueError as exc:
                raise InvalidVersionError(path_display, language_id, version) from exc


def _temp_path(path: Path, attempt: int) -> Path:
    parent = path.parent if str(path.parent) else Path(".")
    name = path.name or "state.json"
    return parent / f".{name}.{os.getpid()}.{attempt}.tmp"


def _create_temp(path: Path, path_display: str) -> tuple[Path, int]:
    for attempt in range(_TEMP_ATTEMPTS):
        temp = _temp_path(path, attempt)
        try:
            fd = os.open(temp, os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0))
        except FileExistsError:
            continue
        except OSError as exc:
            raise GlobalStateWriteError(
                path_display, WriteStage.CREATE_TEMP, exc, str(temp)
            ) from exc
        return temp, fd
    raise GlobalStateWriteError(
        path_display,
        WriteStage.CREATE_TEMP,
        FileExistsError("could not allocate unique temporary state path"),
        str(_temp_path(path, _TEMP_ATTEMPTS - 1)),
    )


def _remove_quietly(temp: Path) -> None:
    try:
        temp.unlink()
    except OSError:
        pass


def _write_atomically(path: Path, path_display: str, contents: bytes) -> None:
    temp, fd = _create_temp(path, path_display)
    temp_display = str(temp)
    with os.fdopen(fd, "wb") as handle:
        try:
            handle.write(contents)
            handle.flush()
        except OSError as exc:
            handle.close()
            _remove_quietly(temp)
            raise GlobalStateWriteError(
                path_display, WriteStage.WRITE_TEMP, exc, temp_display
            ) from exc
        try:
            os.fsync(handle.fileno())
        except OSError as exc:
            handle.close()
            _remove_quietly(temp)
            raise GlobalStateWriteError(
                path_display, WriteStage.SYNC_TEMP, exc, temp_display
            ) from exc

    try:
        os.replace(temp, path)
    except OSError as exc:
        _remove_quietly(temp)
        raise GlobalStateWriteError(path_display, WriteStage.RENAME, exc, temp_display) from exc