"""Auto-install policy evaluation for enabled language packs."""

from __future__ import annotations

from dataclasses import dataclass, field

from .contract import LanguageId
from .lockfile import LockedLanguage


@dataclass
class InstalledManifest:
    """Installed-manifest metadata used by policy evaluation."""

    version: str
    api_version: int
    target: str
    sha256: str


@dataclass
class PackIndexArtifact:
    """Pack-index artifact metadata used by policy evaluation."""

    target: str
    sha256: str


@dataclass
class AutoInstallPolicyInput:
    """Inputs required to evaluate language-pack auto-install policy."""

    enabled_language_ids: set[LanguageId] = field(default_factory=set)
    locked_languages: dict[LanguageId, LockedLanguage] = field(default_factory=dict)
    installed_manifests: dict[LanguageId, list[InstalledManifest]] = field(default_factory=dict)
    allow_auto_install: bool = True
    pack_index_artifacts: dict[LanguageId, dict[str, list[PackIndexArtifact]]] = field(
        default_factory=dict
    )


@dataclass
class InstallPlan:
    """Install action for one language pack locked by the repository."""

    language_id: LanguageId
    version: str
    sha256: str


@dataclass(eq=True)
class AutoInstallPolicyError(Exception):
    """Blocking failure produced while evaluating auto-install decisions."""

    def __post_init__(self) -> None:
        super().__init__(str(self))


@dataclass(eq=True)
class MissingLockfileEntry(AutoInstallPolicyError):
    """An enabled language id is not present in ``wax.lock.json``."""

    language_id: LanguageId

    def __str__(self) -> str:
        return f"enabled language {self.language_id} is missing from wax.lock.json"


@dataclass(eq=True)
class MissingInstalledWithAutoInstallDisabled(AutoInstallPolicyError):
    """The pinned artifact is not installed and auto-install was disabled."""

    language_id: LanguageId
    version: str
    target: str
    sha256: str
    api_version: int

    def __str__(self) -> str:
        return (
            f"language {self.language_id} locked at {self.version} ({self.target}, "
            f"sha256={self.sha256}, api_version={self.api_version}) is not installed "
            "and auto-install is disabled"
        )


@dataclass(eq=True)
class DigestDrift(AutoInstallPolicyError):
    """The locked digest differs from the pack-index digest for the same version."""

    language_id: LanguageId
    version: str
    lockfile_sha256: str
    pack_index_sha256: str

    def __str__(self) -> str:
        return (
            f"language {self.language_id} locked at {self.version} has digest drift: "
            f"lockfile={self.lockfile_sha256} pack-index={self.pack_index_sha256}"
        )


@dataclass(eq=True)
class MissingPackIndexEntry(AutoInstallPolicyError):
    """The locked version is not present in the current pack index."""

    language_id: LanguageId
    version: str

    def __str__(self) -> str:
        return (
            f"language {self.language_id} locked at {self.version} is missing from "
            "the pack index; refusing auto-install"
        )


@dataclass
class AutoInstallPolicyDecision:
    """Policy result split into ready, installable and blocking outcomes."""

    ready: set[LanguageId] = field(default_factory=set)
    needs_install: list[InstallPlan] = field(default_factory=list)
    errors: list[AutoInstallPolicyError] = field(default_factory=list)


def evaluate_auto_install_policy(policy_input: AutoInstallPolicyInput) -> AutoInstallPolicyDecision:
    """Decide, for each enabled language in id order, whether it is ready or installable."""
    decision = AutoInstallPolicyDecision()

    for language_id in sorted(policy_input.enabled_language_ids):
        locked = policy_input.locked_languages.get(language_id)
        if locked is None:
            decision.errors.append(MissingLockfileEntry(language_id))
            continue

        if _has_matching_installed_manifest(
            policy_input.installed_manifests.get(language_id, ()), locked
        ):
            decision.ready.add(language_id)
            continue

        resolved = locked.resolved
        if not policy_input.allow_auto_install:
            decision.errors.append(
                MissingInstalledWithAutoInstallDisabled(
                    language_id=language_id,
                    version=locked.version,
                    target=resolved.target,
                    sha256=resolved.sha256,
                    api_version=locked.api_version,
                )
            )
            continue

        artifacts = policy_input.pack_index_artifacts.get(language_id, {}).get(
            locked.version, ()
        )
        pack_index_sha = next(
            (artifact.sha256 for artifact in artifacts if artifact.target == resolved.target),
            None,
        )
        if pack_index_sha is None:
            decision.errors.append(MissingPackIndexEntry(language_id, locked.version))
            continue

        if pack_index_sha != resolved.sha256:
            decision.errors.append(
                DigestDrift(
                    language_id=language_id,
                    version=locked.version,
                    lockfile_sha256=resolved.sha256,
                    pack_index_sha256=pack_index_sha,
                )
            )
            continue

        decision.needs_install.append(
            InstallPlan(language_id=language_id, version=locked.version, sha256=resolved.sha256)
        )

    return decision


def _has_matching_installed_manifest(manifests, locked: LockedLanguage) -> bool:
    return any(
        manifest.version == locked.version
        and manifest.api_version == locked.api_version
        and manifest.target == locked.resolved.target
        and manifest.sha256 == locked.resolved.sha256
        for manifest in manifests
    )