import json

import pytest

from waxengine.contract import LanguageId
from waxengine.waxrc import (
    WAXRC_SCHEMA_VERSION,
    InvalidWaxRcError,
    MalformedWaxRcError,
    UnsupportedWaxRcSchemaError,
    WaxRcError,
    WaxRcReadError,
    load_waxrc,
)


def write(tmp_path, payload):
    path = tmp_path / ".waxrc"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return path


def test_loads_languages_with_default_engine(tmp_path):
    path = write(
        tmp_path,
        '{\n  "schema_version": 1,\n  "languages": [\n'
        '    { "id": "compose", "enabled": true },\n'
        '    { "id": "react", "enabled": false }\n  ]\n}',
    )
    rc = load_waxrc(path)
    assert rc.schema_version == WAXRC_SCHEMA_VERSION
    assert [entry.id for entry in rc.languages] == [LanguageId("compose"), LanguageId("react")]
    assert [entry.enabled for entry in rc.languages] == [True, False]
    assert rc.engine.scan_concurrency == 2


def test_engine_scan_concurrency_is_read(tmp_path):
    path = write(
        tmp_path,
        {"schema_version": 1, "engine": {"scan_concurrency": 7}, "languages": []},
    )
    assert load_waxrc(path).engine.scan_concurrency == 7


def test_engine_without_concurrency_uses_default(tmp_path):
    path = write(tmp_path, {"schema_version": 1, "engine": {}, "languages": []})
    assert load_waxrc(path).engine.scan_concurrency == 2


def test_pack_specific_fields_are_kept_in_extra(tmp_path):
    path = write(
        tmp_path,
        {
            "schema_version": 1,
            "languages": [
                {
                    "id": "compose",
                    "enabled": True,
                    "design_system_registry": "design-system/registry.json",
                }
            ],
        },
    )
    entry = load_waxrc(path).languages[0]
    assert entry.extra == {"design_system_registry": "design-system/registry.json"}


def test_missing_file_raises_read_error(tmp_path):
    path = tmp_path / "missing" / ".waxrc"
    with pytest.raises(WaxRcReadError) as info:
        load_waxrc(path)
    assert info.value.path == str(path)
    assert str(info.value).startswith("failed to read .waxrc from")


def test_malformed_json(tmp_path):
    with pytest.raises(MalformedWaxRcError):
        load_waxrc(write(tmp_path, "{ not json"))


def test_unsupported_schema_version_is_checked_before_shape(tmp_path):
    path = write(tmp_path, {"schema_version": 2, "unknown": True})
    with pytest.raises(UnsupportedWaxRcSchemaError) as info:
        load_waxrc(path)
    assert info.value.found == 2
    assert info.value.supported == WAXRC_SCHEMA_VERSION


@pytest.mark.parametrize(
    "payload",
    [
        {"languages": []},
        {"schema_version": "1", "languages": []},
        {"schema_version": 1},
        {"schema_version": 1, "languages": [], "extra_top_level": 1},
        {"schema_version": 1, "engine": {"threads": 4}, "languages": []},
        {"schema_version": 1, "languages": [{"id": "Compose", "enabled": True}]},
        {"schema_version": 1, "languages": [{"id": "compose"}]},
        {"schema_version": 1, "languages": [{"id": "compose", "enabled": "yes"}]},
        {"schema_version": 1, "engine": {"scan_concurrency": -1}, "languages": []},
        [1, 2, 3],
    ],
)
def test_invalid_shapes_are_rejected(tmp_path, payload):
    with pytest.raises(InvalidWaxRcError) as info:
        load_waxrc(write(tmp_path, payload))
    assert isinstance(info.value, WaxRcError)
    assert "invalid .waxrc config" in str(info.value)