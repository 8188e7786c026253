import pytest

from waxengine.auto_install import (
    AutoInstallPolicyError,
    AutoInstallPolicyInput,
    DigestDrift,
    InstalledManifest,
    InstallPlan,
    MissingInstalledWithAutoInstallDisabled,
    MissingLockfileEntry,
    MissingPackIndexEntry,
    PackIndexArtifact,
    evaluate_auto_install_policy,
)
from waxengine.contract import LanguageId
from waxengine.lockfile import LockedLanguage, ResolvedLanguage

SHA = "a" * 64
OTHER_SHA = "b" * 64
TARGET = "x86_64-unknown-linux-gnu"
COMPOSE = LanguageId("compose")
REACT = LanguageId("react")


def locked(sha=SHA, api_version=1):
    return LockedLanguage(
        version="0.1.0",
        api_version=api_version,
        source="file:///tmp/registry.json",
        resolved=ResolvedLanguage(
            target=TARGET,
            url="https://example.invalid/compose-0.1.0.tgz",
            sha256=sha,
        ),
    )


def manifest(sha=SHA, api_version=1, version="0.1.0", target=TARGET):
    return InstalledManifest(version=version, api_version=api_version, target=target, sha256=sha)


def index(sha=SHA, language=COMPOSE, version="0.1.0", target=TARGET):
    return {language: {version: [PackIndexArtifact(target=target, sha256=sha)]}}


def test_installed_matching_manifest_is_ready():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={COMPOSE},
            locked_languages={COMPOSE: locked()},
            installed_manifests={COMPOSE: [manifest(version="0.0.9"), manifest()]},
            allow_auto_install=False,
        )
    )
    assert decision.ready == {COMPOSE}
    assert decision.needs_install == []
    assert decision.errors == []


def test_missing_lockfile_entry():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(enabled_language_ids={REACT})
    )
    assert decision.errors == [MissingLockfileEntry(REACT)]
    assert str(decision.errors[0]) == "enabled language react is missing from wax.lock.json"
    assert decision.ready == set()


@pytest.mark.parametrize(
    "installed",
    [
        manifest(api_version=2),
        manifest(sha=OTHER_SHA),
        manifest(target="aarch64-apple-darwin"),
        manifest(version="0.2.0"),
    ],
)
def test_mismatched_install_with_auto_install_disabled(installed):
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={COMPOSE},
            locked_languages={COMPOSE: locked()},
            installed_manifests={COMPOSE: [installed]},
            allow_auto_install=False,
        )
    )
    assert decision.errors == [
        MissingInstalledWithAutoInstallDisabled(
            language_id=COMPOSE, version="0.1.0", target=TARGET, sha256=SHA, api_version=1
        )
    ]
    assert "auto-install is disabled" in str(decision.errors[0])


def test_missing_pack_index_entry():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={COMPOSE},
            locked_languages={COMPOSE: locked()},
            pack_index_artifacts=index(target="aarch64-apple-darwin"),
        )
    )
    assert decision.errors == [MissingPackIndexEntry(COMPOSE, "0.1.0")]
    assert "refusing auto-install" in str(decision.errors[0])


def test_digest_drift():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={COMPOSE},
            locked_languages={COMPOSE: locked()},
            pack_index_artifacts=index(sha=OTHER_SHA),
        )
    )
    assert decision.errors == [
        DigestDrift(
            language_id=COMPOSE,
            version="0.1.0",
            lockfile_sha256=SHA,
            pack_index_sha256=OTHER_SHA,
        )
    ]
    assert decision.needs_install == []


def test_needs_install_when_index_matches_lockfile():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={COMPOSE},
            locked_languages={COMPOSE: locked()},
            pack_index_artifacts=index(),
        )
    )
    assert decision.needs_install == [InstallPlan(language_id=COMPOSE, version="0.1.0", sha256=SHA)]
    assert decision.errors == []


def test_outcomes_are_evaluated_in_language_id_order():
    decision = evaluate_auto_install_policy(
        AutoInstallPolicyInput(
            enabled_language_ids={REACT, COMPOSE, LanguageId("basic")},
            locked_languages={COMPOSE: locked(), REACT: locked()},
            pack_index_artifacts={**index(), **index(language=REACT)},
        )
    )
    assert decision.errors == [MissingLockfileEntry(LanguageId("basic"))]
    assert [plan.language_id for plan in decision.needs_install] == [COMPOSE, REACT]


def test_policy_errors_are_exceptions():
    error = MissingPackIndexEntry(COMPOSE, "0.1.0")
    with pytest.raises(AutoInstallPolicyError) as info:
        raise error
    assert info.value == MissingPackIndexEntry(COMPOSE, "0.1.0")