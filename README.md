# waxengine

Building blocks for a design-system analysis engine:

- `waxengine.contract`: the scan-facts data contract exchanged between
  language packs and the engine, with strict JSON decoding and validation.
- `waxengine.waxrc`: loading the repository configuration file `.waxrc`.
- `waxengine.lockfile`: loading `wax.lock.json` and comparing it with `.waxrc`.
- `waxengine.auto_install`: deciding which enabled language packs are ready,
  which can be installed, and which are blocked.
- `waxengine.global_state`: reading and atomically writing the global
  installation state file.
- `waxengine.install`: fetching, verifying and installing a language-pack
  archive.

The package has no third-party dependencies. The `test` extra adds pytest:

```
pip install "waxengine[test]"
```

## Validating scan facts

Language packs emit a JSON document of scan facts. `scan_facts_from_json`
decodes and validates it. It raises a subclass of `ScanFactsError`:

- `InvalidJsonError` for bad JSON, unknown fields, wrong types, integers
  outside their range, bad language ids or timestamps that are not RFC 3339;
- `UnsupportedSchemaVersionError` when `schema_version` is not
  `SCHEMA_VERSION` (1);
- `ContractViolationError` (with `field` and `message`) when
  `metrics.adoption_coverage_ratio` is missing, when any other field is an
  explicit `null`, when a required string is empty, when a line or column is
  zero, when `registry_symbol` is missing for resolved/candidate usage or
  present for unresolved usage, when `parse_extract_ms` exceeds
  `MAX_PARSE_EXTRACT_MS`, or when counts or the coverage ratio do not match
  the facts.

```python
from waxengine.contract import scan_facts_from_json, ScanFactsError

try:
    facts = scan_facts_from_json(text)
except ScanFactsError as error:
    print(error)
else:
    print(facts.counts.usage_site_count, facts.metrics.adoption_coverage_ratio)
```

Producers building a `ScanFacts` in memory can call `recompute_counts()`
(which sets `counts` and the coverage ratio, resolved sites divided by all
sites, or `None` with no sites) and `validate()`, then `to_json()` or
`to_dict()`. `ScanFacts.from_dict` decodes parsed JSON checking only shape and
integer widths. `MergedScan` holds per-language facts keyed by `LanguageId`,
with `to_dict()` and `from_dict()`.

`LanguageId` is a `str` subclass that accepts only lowercase ASCII slugs
(`[a-z][a-z0-9-]*`) and raises `LanguageIdError` otherwise.

## Repository configuration

```python
from waxengine.waxrc import load_waxrc
from waxengine.lockfile import load_lockfile, check_waxrc_lockfile_languages

rc = load_waxrc("repo/.waxrc")
lock = load_lockfile("repo/wax.lock.json")
report = check_waxrc_lockfile_languages(rc, lock)
print(report.missing_enabled_languages, report.stale_locked_languages)
```

`load_waxrc` returns a `WaxRc` with `schema_version`, `engine`
(an `EngineConfig` whose `scan_concurrency` defaults to 2) and `languages`, a
list of `LanguageEntry` items; keys other than `id` and `enabled` are kept in
`LanguageEntry.extra`. Failures raise `WaxRcReadError`, `MalformedWaxRcError`,
`InvalidWaxRcError` or `UnsupportedWaxRcSchemaError`, all `WaxRcError`.

`load_lockfile` returns a `WaxLock` of `LockedLanguage` entries, each with a
`ResolvedLanguage` (target, url, sha256 and an optional `SignatureRef`).
Failures raise `LockfileReadError`, `MalformedLockfileError`,
`InvalidLockfileError` or `UnsupportedLockfileSchemaError`, all
`LockfileError`. `WaxLock.from_dict` and `WaxLock.to_dict` convert to and from
parsed JSON.

## Auto-install policy

`evaluate_auto_install_policy` takes an `AutoInstallPolicyInput` (enabled
language ids, locked entries, `InstalledManifest` lists, `PackIndexArtifact`
lists keyed by language and version, and `allow_auto_install`) and returns an
`AutoInstallPolicyDecision`. Languages are examined in id order:

- a language with no lockfile entry yields `MissingLockfileEntry`;
- one installed with the locked version, API version, target and digest is
  added to `ready`;
- otherwise, with auto-install disabled, `MissingInstalledWithAutoInstallDisabled`;
- with no pack-index artifact for the locked version and target,
  `MissingPackIndexEntry`;
- with a pack-index digest that differs from the lockfile, `DigestDrift`;
- else an `InstallPlan` is added to `needs_install`.

The errors are exceptions (subclasses of `AutoInstallPolicyError`) collected in
`errors`, not raised.

## Global state

`load_global_state(path)` returns a `GlobalState` mapping language ids and
versions to `InstalledLanguagePack(install_dir)`; a missing file loads as empty
state. `save_global_state(path, state)` creates parent directories, writes a
sibling temporary file, syncs it and replaces the target. Version keys must be
single path segments (`validate_version_segment`), else `InvalidVersionError`.
Other failures raise `GlobalStateReadError`, `MalformedGlobalStateError`,
`InvalidGlobalStateError` or `GlobalStateWriteError` (whose `stage` says which
step failed).

## Installing a language pack

```python
from waxengine.contract import LanguageId
from waxengine.install import LanguagePackManifestSpec, install_language

lang = LanguageId("compose")
manifest = LanguagePackManifestSpec(
    id=lang, version="0.1.0", api_version=1, command=["./wax-lang-compose"],
    ecosystem="test", parser_name="fixture", parser_version="1.0.0",
)
path = install_language(
    "/home/me/.wax", lang, "0.1.0", "x86_64-unknown-linux-gnu",
    "file:///tmp/compose-0.1.0.tgz", expected_sha256, None, manifest,
)
```

`install_language` checks the manifest id and version against the arguments,
refuses a differing pack-index digest before fetching, refuses an existing
destination, fetches a `.tar.gz` from a `file://` (empty host or `localhost`),
`http://` or `https://` URL, checks its SHA-256, unpacks only regular files and
directories without `..` or absolute paths into a staging directory, writes
`manifest.json` (with `target` and `sha256` added), requires `command[0]` to be
`./`-relative and name a regular file, marks it executable on POSIX, and renames
the staging directory to `lang_install_dir(wax_home, language_id, version)`,
that is `<wax_home>/langs/<id>/<version>`. The staging directory is removed on
failure. Errors are subclasses of `InstallError`.

## What this package does not do

It has no command-line program. It does not run language packs or scan a
repository, does not write merged scan output, does not download or parse a
pack index, does not write `.waxrc` or `wax.lock.json`, does not update global
state after an install, and does not locate the wax home directory: callers
pass paths and the `wax_home` directory explicitly.