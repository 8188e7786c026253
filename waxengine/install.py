"""Download, verification and atomic installation of language packs."""

from __future__ import annotations

import hashlib
import io
import json
import os
import shutil
import stat
import tarfile
import urllib.error
import urllib.request
import zlib
from collections.abc import Iterator
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path, PurePosixPath
from typing import Any

from .contract import LanguageId
from .global_state import validate_version_segment

_STAGING_ATTEMPTS = 1000
_HTTP_TIMEOUT_SECONDS = 300
_REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE, tarfile.CONTTYPE)


@dataclass
class LanguagePackManifestSpec:
    """Manifest fields written to ``manifest.json`` next to installed pack binaries."""

    id: LanguageId
    version: str
    api_version: int
    command: list[str] = field(default_factory=list)
    ecosystem: str = ""
    parser_name: str = ""
    parser_version: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation in declaration order."""
        return {
            "id": str(self.id),
            "version": self.version,
            "api_version": self.api_version,
            "command": list(self.command),
            "ecosystem": self.ecosystem,
            "parser_name": self.parser_name,
            "parser_version": self.parser_version,
        }


class InstallError(Exception):
    """Base error raised while downloading or installing a language pack."""


class DigestDriftError(InstallError):
    """The expected digest disagrees with the pack index before download."""

    def __init__(self, expected: str, pack_index: str) -> None:
        self.expected = expected
        self.pack_index = pack_index
        super().__init__(
            f"digest drift between lockfile or caller digest ({expected}) and pack index "
            f"({pack_index}); refusing install"
        )


class UnsupportedSchemeError(InstallError):
    """The artifact URL scheme is not supported."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            f"unsupported artifact URL scheme for {url}; supported schemes are "
            "file://, http://, https://"
        )


class InvalidFileUrlError(InstallError):
    """A ``file://`` URL could not be turned into a local path."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"invalid file:// artifact URL {url}: {reason}")


class FetchError(InstallError):
    """Artifact bytes could not be fetched from disk or network."""

    def __init__(self, url: str, source: Exception) -> None:
        self.url = url
        self.source = source
        super().__init__(f"failed to fetch artifact from {url}: {source}")


class InvalidDigestHexError(InstallError):
    """A SHA-256 hex string is malformed."""

    def __init__(self, digest: str, reason: str) -> None:
        self.digest = digest
        self.reason = reason
        super().__init__(f"invalid SHA-256 hex digest {json.dumps(digest)}: {reason}")


class ShaMismatchError(InstallError):
    """The downloaded artifact digest does not match the expected digest."""

    def __init__(self, url: str, expected: str, computed: str) -> None:
        self.url = url
        self.expected = expected
        self.computed = computed
        super().__init__(
            f"artifact SHA-256 mismatch for {url}: expected {expected}, computed {computed}"
        )


class ManifestMismatchError(InstallError):
    """The manifest id or version disagrees with the install parameters."""

    def __init__(
        self, manifest_id: str, manifest_version: str, install_id: str, install_version: str
    ) -> None:
        self.manifest_id = manifest_id
        self.manifest_version = manifest_version
        self.install_id = install_id
        self.install_version = install_version
        super().__init__(
            "manifest fields disagree with install parameters "
            f"(manifest id={manifest_id}, version={manifest_version}; "
            f"install id={install_id}, version={install_version})"
        )


class MissingPrimaryBinaryError(InstallError):
    """The launch command has no first element."""

    def __init__(self) -> None:
        super().__init__("manifest.command must include at least one binary path")


class InvalidPrimaryBinaryPathError(InstallError):
    """The primary binary path does not start with ``./``."""

    def __init__(self) -> None:
        super().__init__(
            "manifest.command[0] must start with ./ when specifying a bundled binary"
        )


class InvalidPrimaryBinaryError(InstallError):
    """The primary binary is not a regular file inside the install directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            "manifest.command[0] must reference a regular file inside the install "
            f"directory (got {path})"
        )


class UnsupportedArchiveEntryError(InstallError):
    """The archive holds an entry that is neither a regular file nor a directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"unsupported archive entry type for path {json.dumps(path)}")


class PathTraversalError(InstallError):
    """An archive or binary path tries to leave the staging directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"unsafe archive path {json.dumps(path)}; dot-dot segments are not allowed"
        )


class AlreadyInstalledError(InstallError):
    """The destination install directory already exists."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"language pack already installed at {path}; remove it with "
            "`wax language uninstall` before reinstalling"
        )


class InstallIOError(InstallError):
    """A filesystem operation failed while staging or promoting a pack."""

    def __init__(self, context: str, source: Exception) -> None:
        self.context = context
        self.source = source
        super().__init__(f"{context}: {source}")


def lang_install_dir(
    wax_home: str | PathLike[str], language_id: LanguageId, version: str
) -> Path:
    """Return ``<wax_home>/langs/<id>/<version>`` after checking the version segment."""
    try:
        validate_version_segment(version)
    except ValueError as exc:
        raise InstallError(str(exc)) from exc
    return Path(wax_home) / "langs" / str(language_id) / version


def install_language(
    wax_home: str | PathLike[str],
    language_id: LanguageId,
    version: str,
    target_triple: str,
    artifact_url: str,
    expected_digest_hex: str,
    pack_index_digest_hex: str | None,
    manifest: LanguagePackManifestSpec,
) -> Path:
    """Fetch, verify, unpack and atomically promote a language pack; return its directory.

    A ``pack_index_digest_hex`` that differs from the expected digest is refused
    before anything is fetched. An existing destination is never replaced.
    """
    destination = lang_install_dir(wax_home, language_id, version)

    if str(manifest.id) != str(language_id) or manifest.version != version:
        raise ManifestMismatchError(
            str(manifest.id), manifest.version, str(language_id), version
        )

    expected_digest = _normalize_sha256_hex(expected_digest_hex)
    if pack_index_digest_hex is not None:
        pack_digest = _normalize_sha256_hex(pack_index_digest_hex)
        if pack_digest != expected_digest:
            raise DigestDriftError(expected_digest, pack_digest)

    if destination.exists():
        raise AlreadyInstalledError(str(destination))

    data = _fetch_artifact_bytes(artifact_url)
    computed = hashlib.sha256(data).hexdigest()
    if computed != expected_digest:
        raise ShaMismatchError(artifact_url, expected_digest, computed)

    langs_parent = Path(wax_home) / "langs" / str(language_id)
    try:
        langs_parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise InstallIOError(f"create langs staging parent {langs_parent}", exc) from exc

    staging = _allocate_staging_dir(langs_parent)
    try:
        _unpack_tar_gz(data, staging)
        try:
            _write_manifest_json(staging, manifest, target_triple, expected_digest)
        except OSError as exc:
            raise InstallIOError(f"write manifest.json under {staging}", exc) from exc
        binary = _validated_manifest_binary(staging, manifest)
        try:
            _make_executable(binary)
        except OSError as exc:
            raise InstallIOError(f"set executable bit for {binary}", exc) from exc
        _promote(staging, destination)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    return destination


def _normalize_sha256_hex(digest: str) -> str:
    trimmed = digest.strip()
    if len(trimmed) != 64:
        raise InvalidDigestHexError(digest, "expected 64 hexadecimal characters")
    if not all(ch in "0123456789abcdefABCDEF" for ch in trimmed):
        raise InvalidDigestHexError(digest, "digest contains non-hex characters")
    return trimmed.lower()


def _fetch_artifact_bytes(url: str) -> bytes:
    if url.startswith("file://"):
        path = _file_url_to_path(url)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FetchError(url, exc) from exc

    if url.startswith(("http://", "https://")):
        try:
            with urllib.request.urlopen(url, timeout=_HTTP_TIMEOUT_SECONDS) as response:
                return response.read()
        except (OSError, ValueError) as exc:
            raise FetchError(url, exc) from exc

    raise UnsupportedSchemeError(url)


def _file_url_to_path(url: str) -> Path:
    if not url.startswith("file://"):
        raise InvalidFileUrlError(url, "missing file:// prefix")
    rest = url[len("file://"):]

    if rest.startswith("/"):
        path_part = rest
    else:
        host, sep, path = rest.partition("/")
        if not sep:
            raise InvalidFileUrlError(url, "missing absolute path")
        if host != "localhost":
            raise InvalidFileUrlError(url, "only empty host or localhost are supported")
        path_part = f"/{path}"

    decoded = _percent_decode(path_part)
    if decoded is None:
        raise InvalidFileUrlError(url, "percent decoding failed")
    return Path(decoded)


def _percent_decode(text: str) -> str | None:
    raw = text.encode("utf-8")
    out = bytearray()
    index = 0
    while index < len(raw):
        byte = raw[index]
        if byte == ord("%"):
            pair = raw[index + 1 : index + 3]
            if len(pair) != 2 or not all(chr(b) in "0123456789abcdefABCDEF" for b in pair):
                return None
            out.append(int(pair.decode("ascii"), 16))
            index += 3
        else:
            out.append(byte)
            index += 1
    try:
        return out.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _allocate_staging_dir(parent: Path) -> Path:
    for attempt in range(_STAGING_ATTEMPTS):
        staging = parent / f".install-{os.getpid()}-{attempt}.tmp"
        try:
            staging.mkdir()
        except FileExistsError:
            continue
        except OSError as exc:
            raise InstallIOError(f"create staging dir {staging}", exc) from exc
        return staging
    raise InstallIOError(
        "allocate unique staging directory",
        FileExistsError("could not allocate unique staging directory"),
    )


def _archive_members(archive: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
    while True:
        try:
            member = archive.next()
        except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
            raise InstallIOError("read tar archive entry", exc) from exc
        if member is None:
            return
        yield member


def _unpack_tar_gz(data: bytes, destination: Path) -> None:
    try:
        archive = tarfile.open(fileobj=io.BytesIO(data), mode="r:gz")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise InstallIOError("read tar archive entries", exc) from exc

    with archive:
        for member in _archive_members(archive):
            is_dir = member.type == tarfile.DIRTYPE
            if not is_dir and member.type not in _REGULAR_TYPES:
                raise UnsupportedArchiveEntryError(member.name)

            out_path = destination / _validated_relative_path(member.name)

            if is_dir:
                try:
                    out_path.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise InstallIOError(f"mkdir {out_path}", exc) from exc
                continue

            try:
                out_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise InstallIOError(f"mkdir {out_path.parent}", exc) from exc

            try:
                outfile = out_path.open("xb")
            except OSError as exc:
                raise InstallIOError(f"create {out_path}", exc) from exc

            with outfile:
                try:
                    source = archive.extractfile(member)
                    if source is not None:
                        shutil.copyfileobj(source, outfile)
                except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
                    raise InstallIOError(f"unpack {out_path}", exc) from exc


def _validated_relative_path(raw: str) -> PurePosixPath:
    if raw.startswith("/"):
        raise PathTraversalError(raw)
    parts: list[str] = []
    for part in raw.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise PathTraversalError(raw)
        parts.append(part)
    if not parts:
        raise PathTraversalError(raw)
    return PurePosixPath(*parts)


def _write_manifest_json(
    directory: Path, manifest: LanguagePackManifestSpec, target: str, sha256: str
) -> None:
    persisted = {**manifest.to_dict(), "target": target, "sha256": sha256}
    with (directory / "manifest.json").open("x", encoding="utf-8") as handle:
        handle.write(json.dumps(persisted, indent=2))
        handle.write("\n")


def _validated_manifest_binary(staging: Path, manifest: LanguagePackManifestSpec) -> Path:
    if not manifest.command:
        raise MissingPrimaryBinaryError()
    primary = manifest.command[0]
    if not primary.startswith("./"):
        raise InvalidPrimaryBinaryPathError()

    binary = staging / _validated_relative_path(primary[2:])
    try:
        info = binary.stat()
    except OSError as exc:
        raise InstallIOError(f"stat manifest primary binary {binary}", exc) from exc
    if not stat.S_ISREG(info.st_mode):
        raise InvalidPrimaryBinaryError(str(binary))
    return binary


def _make_executable(binary: Path) -> None:
    if os.name == "posix":
        mode = binary.stat().st_mode
        os.chmod(binary, stat.S_IMODE(mode) | 0o111)


def _promote(staging: Path, destination: Path) -> None:
    if destination.exists():
        raise AlreadyInstalledError(str(destination))
    try:
        os.rename(staging, destination)
    except OSError as exc:
        if destination.exists():
            raise AlreadyInstalledError(str(destination)) from exc
        raise InstallIOError(f"promote staged dir {staging} -> {destination}", exc) from exc