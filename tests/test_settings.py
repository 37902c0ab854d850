"""Tests for KDATUM settings module."""

import json
import tempfile
from pathlib import Path

import pytest

from kdatum.settings import (
    ApplicationSettings,
    IOSettings,
    NumericsSettings,
    SettingsManager,
    get_settings,
    get_settings_manager,
    load_settings,
    reset_settings,
    save_settings,
)


@pytest.fixture(autouse=True)
def clean_settings():
    reset_settings()
    yield
    reset_settings()


class TestNumericsSettings:
    def test_defaults(self):
        s = NumericsSettings()
        assert s.snap_tolerance == 0.01
        assert s.max_fft_length == 720720
        assert s.fft_padding_factor == 2


class TestIOSettings:
    def test_defaults(self):
        s = IOSettings()
        assert s.trace_chunk_size == 1000
        assert s.zarr_compressor == "blosc"


class TestApplicationSettings:
    def test_to_dict(self):
        d = ApplicationSettings().to_dict()
        assert d["numerics"]["snap_tolerance"] == 0.01
        assert d["io"]["trace_chunk_size"] == 1000

    def test_from_dict(self):
        s = ApplicationSettings.from_dict({"numerics": {"snap_tolerance": 0.05}})
        assert s.numerics.snap_tolerance == 0.05
        # Other values should be defaults
        assert s.numerics.max_fft_length == 720720
        assert s.io.trace_chunk_size == 1000


class TestSettingsManager:
    def test_singleton(self):
        assert SettingsManager() is SettingsManager()
        assert get_settings_manager() is SettingsManager()

    def test_reset(self):
        m = SettingsManager()
        m.settings.numerics.snap_tolerance = 0.2
        m.reset()
        assert m.settings.numerics.snap_tolerance == 0.01

    def test_update_nested(self):
        m = SettingsManager()
        m.update(**{"io.trace_chunk_size": 50})
        assert get_settings().io.trace_chunk_size == 50

    def test_update_unknown(self):
        with pytest.raises(AttributeError):
            SettingsManager().update(**{"numerics.no_such_value": 1})

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("KDATUM_NUMERICS__SNAP_TOLERANCE", "0.03")
        monkeypatch.setenv("KDATUM_IO__TRACE_CHUNK_SIZE", "10")
        monkeypatch.setenv("KDATUM_UNKNOWN__THING", "1")
        SettingsManager().load_from_env()
        assert get_settings().numerics.snap_tolerance == 0.03
        assert get_settings().io.trace_chunk_size == 10

    def test_auto_load_from_env_path(self, monkeypatch):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.json"
            path.write_text(json.dumps({"io": {"trace_chunk_size": 7}}))
            monkeypatch.setenv("KDATUM_SETTINGS_PATH", str(path))
            assert SettingsManager().auto_load()
        assert get_settings().io.trace_chunk_size == 7


class TestFileOperations:
    def test_save_and_load_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.json"
            get_settings().numerics.snap_tolerance = 0.02
            save_settings(path)

            reset_settings()
            assert get_settings().numerics.snap_tolerance == 0.01

            load_settings(path)
            assert get_settings().numerics.snap_tolerance == 0.02

    def test_save_and_load_toml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.toml"
            get_settings().io.zarr_compressor = "none"
            save_settings(path)

            content = path.read_text()
            assert "[numerics]" in content
            assert 'zarr_compressor = "none"' in content

            reset_settings()
            load_settings(path)
            assert get_settings().io.zarr_compressor == "none"
            assert SettingsManager().path == path

    def test_toml_string_escaping(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.toml"
            value = 'C:\\blosc"x'
            get_settings().io.zarr_compressor = value
            get_settings().numerics.singular_time_tolerance = 1e-12
            save_settings(path)

            reset_settings()
            load_settings(path)
            assert get_settings().io.zarr_compressor == value
            assert get_settings().numerics.singular_time_tolerance == 1e-12

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_settings("/nonexistent/settings.toml")

    def test_unsupported_format(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.yaml"
            path.write_text("numerics: {}")
            with pytest.raises(ValueError):
                load_settings(path)
