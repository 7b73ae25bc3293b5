"""Tests for configuration schema and loading."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from flowstage.contracts import CaseMapping
from flowstage.core.config import (
    ConcurrencySettings,
    ContentStoreSettings,
    FlowStageSettings,
    LoggingSettings,
    SampleStageOptions,
    load_settings,
    resolve_config,
)


def _write_settings(path: Path, data: dict[str, object]) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestSampleStageOptions:
    def test_defaults(self) -> None:
        options = SampleStageOptions()
        assert options.attribute_name == "isThisAGoodExample"
        assert options.attribute_value == "sure"
        assert options.encoding == "utf-8"
        assert options.case is CaseMapping.NONE
        assert options.include_stacktrace is False

    def test_unknown_encoding_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown encoding"):
            SampleStageOptions(encoding="not-a-codec")

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SampleStageOptions.model_validate({"colour": "blue"})

    def test_case_from_string(self) -> None:
        assert SampleStageOptions.model_validate({"case": "upper"}).case is CaseMapping.UPPER

    def test_options_are_frozen(self) -> None:
        options = SampleStageOptions()
        with pytest.raises(ValidationError):
            options.attribute_value = "no"  # type: ignore[misc]


class TestSections:
    def test_concurrency_requires_positive_workers(self) -> None:
        with pytest.raises(ValidationError):
            ConcurrencySettings(max_workers=0)

    def test_content_store_backend_is_closed_set(self) -> None:
        with pytest.raises(ValidationError):
            ContentStoreSettings(backend="s3")  # type: ignore[arg-type]

    def test_logging_level_is_normalized(self) -> None:
        assert LoggingSettings(level="debug").level == "DEBUG"  # type: ignore[arg-type]

    def test_empty_settings_are_valid(self) -> None:
        settings = FlowStageSettings()
        assert settings.stage.identifier == "Base"
        assert settings.concurrency.max_workers == 1


class TestLoadSettings:
    def test_load_from_yaml(self, tmp_path: Path) -> None:
        path = _write_settings(
            tmp_path / "settings.yaml",
            {
                "stage": {"identifier": "annotate", "options": {"case": "lower"}},
                "content_store": {"backend": "memory"},
                "concurrency": {"max_workers": 3},
            },
        )

        settings = load_settings(path)

        assert settings.stage.identifier == "annotate"
        assert settings.stage.options.case is CaseMapping.LOWER
        assert settings.content_store.backend == "memory"
        assert settings.concurrency.max_workers == 3

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")

    def test_invalid_values_raise_validation_error(self, tmp_path: Path) -> None:
        path = _write_settings(tmp_path / "settings.yaml", {"concurrency": {"max_workers": -1}})
        with pytest.raises(ValidationError):
            load_settings(path)

    def test_env_var_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STAGE_MARKER", "certainly")
        path = _write_settings(
            tmp_path / "settings.yaml",
            {"stage": {"options": {"attribute_value": "${STAGE_MARKER}", "attribute_name": "${MISSING_VAR:-marker}"}}},
        )

        options = load_settings(path).stage.options

        assert options.attribute_value == "certainly"
        assert options.attribute_name == "marker"

    def test_prefixed_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLOWSTAGE_STAGE__IDENTIFIER", "from-env")
        path = _write_settings(tmp_path / "settings.yaml", {"stage": {"identifier": "from-file"}})

        assert load_settings(path).stage.identifier == "from-env"


class TestResolveConfig:
    def test_resolved_config_includes_defaults(self) -> None:
        resolved = resolve_config(FlowStageSettings())
        assert resolved["stage"]["options"]["attribute_name"] == "isThisAGoodExample"
        assert resolved["content_store"]["base_path"] == ".flowstage/content"
