import json
import os
from pathlib import Path

import pytest

from waxengine.contract import LanguageId
from waxengine.global_state import (
    GlobalState,
    GlobalStateReadError,
    GlobalStateWriteError,
    InstalledLanguagePack,
    InvalidGlobalStateError,
    InvalidVersionError,
    MalformedGlobalStateError,
    WriteStage,
    load_global_state,
    save_global_state,
    validate_version_segment,
)


def _sample_state(root: Path) -> GlobalState:
    return GlobalState(
        installed_languages={
            LanguageId("compose"): {
                "0.1.0": InstalledLanguagePack(install_dir=root / "langs/compose/0.1.0")
            },
            LanguageId("react"): {
                "0.2.0": InstalledLanguagePack(install_dir=root / "langs/react/0.2.0")
            },
        }
    )


def test_missing_file_loads_empty_state(tmp_path):
    state = load_global_state(tmp_path / "state.json")
    assert state == GlobalState()
    assert state.installed_languages == {}


def test_save_then_load_round_trips(tmp_path):
    path = tmp_path / "state.json"
    state = _sample_state(tmp_path)
    save_global_state(path, state)
    assert load_global_state(path) == state


def test_empty_state_file_format(tmp_path):
    path = tmp_path / "state.json"
    save_global_state(path, GlobalState())
    assert path.read_text() == '{\n  "installed_languages": {}\n}\n'


def test_saved_json_is_keyed_by_language_and_version(tmp_path):
    path = tmp_path / "state.json"
    save_global_state(path, _sample_state(tmp_path))
    value = json.loads(path.read_text())
    entry = value["installed_languages"]["compose"]["0.1.0"]
    assert entry["install_dir"] == str(tmp_path / "langs/compose/0.1.0")
    assert list(value["installed_languages"]) == ["compose", "react"]


def test_save_creates_parent_directories(tmp_path):
    path = tmp_path / "nested" / "home" / "state.json"
    save_global_state(path, _sample_state(tmp_path))
    assert path.is_file()
    assert load_global_state(path) == _sample_state(tmp_path)


def test_save_leaves_no_temp_files(tmp_path):
    path = tmp_path / "state.json"
    save_global_state(path, _sample_state(tmp_path))
    save_global_state(path, GlobalState())
    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]
    assert load_global_state(path) == GlobalState()


def test_save_skips_existing_temp_file(tmp_path):
    path = tmp_path / "state.json"
    stale = tmp_path / f".state.json.{os.getpid()}.0.tmp"
    stale.write_text("stale temp")
    save_global_state(path, _sample_state(tmp_path))
    assert stale.read_text() == "stale temp"
    assert load_global_state(path) == _sample_state(tmp_path)


def test_missing_installed_languages_defaults_to_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{}")
    assert load_global_state(path).installed_languages == {}


def test_malformed_json_is_rejected(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{ not json")
    with pytest.raises(MalformedGlobalStateError) as info:
        load_global_state(path)
    assert info.value.path == str(path)


@pytest.mark.parametrize(
    "document",
    [
        '{"installed_languages": {}, "extra": 1}',
        '{"installed_languages": {"Compose": {}}}',
        '{"installed_languages": {"compose": {"0.1.0": {}}}}',
        '{"installed_languages": {"compose": {"0.1.0": {"install_dir": 5}}}}',
        '{"installed_languages": {"compose": {"0.1.0": {"install_dir": "/x", "other": 1}}}}',
        "[]",
    ],
)
def test_invalid_shape_is_rejected(tmp_path, document):
    path = tmp_path / "state.json"
    path.write_text(document)
    with pytest.raises(InvalidGlobalStateError):
        load_global_state(path)


def test_invalid_version_on_load_is_rejected(tmp_path):
    path = tmp_path / "state.json"
    path.write_text('{"installed_languages": {"compose": {"../x": {"install_dir": "/x"}}}}')
    with pytest.raises(InvalidVersionError) as info:
        load_global_state(path)
    assert info.value.language_id == "compose"
    assert info.value.version == "../x"


def test_invalid_version_on_save_is_rejected_without_writing(tmp_path):
    path = tmp_path / "state.json"
    state = GlobalState(
        installed_languages={
            LanguageId("compose"): {"a/b": InstalledLanguagePack(install_dir=tmp_path)}
        }
    )
    with pytest.raises(InvalidVersionError):
        save_global_state(path, state)
    assert not path.exists()


def test_unreadable_path_raises_read_error(tmp_path):
    with pytest.raises(GlobalStateReadError) as info:
        load_global_state(tmp_path)
    assert info.value.path == str(tmp_path)


def test_parent_that_is_a_file_raises_create_dir_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    with pytest.raises(GlobalStateWriteError) as info:
        save_global_state(blocker / "state.json", GlobalState())
    assert info.value.stage is WriteStage.CREATE_DIR


@pytest.mark.parametrize("version", ["", ".", "..", "a/b", "a\\b", "1.0\0"])
def test_validate_version_segment_rejects_non_segments(version):
    with pytest.raises(ValueError):
        validate_version_segment(version)


@pytest.mark.parametrize("version", ["0.1.0", "0.1.0-alpha.1"])
def test_validate_version_segment_accepts_plain_versions(version):
    assert validate_version_segment(version) == version


def test_from_dict_and_to_dict_round_trip(tmp_path):
    state = _sample_state(tmp_path)
    assert GlobalState.from_dict(state.to_dict()) == state
    assert GlobalState.from_dict(json.loads(json.dumps(state.to_dict()))) == state