"""Tests for layered configuration."""

from pathlib import Path

import toml

from focxt import config_manager
from focxt.config import DEFAULT_OUT_DIR
from focxt.config_manager import ExtractSettings, load_settings, write_default_config


def test_defaults(temp_dir: Path):
    settings = load_settings(temp_dir)

    assert settings.dump_context is True
    assert settings.clean is True
    assert settings.skip_test_modules is True
    assert settings.workers >= 1
    assert settings.out_dir == temp_dir / DEFAULT_OUT_DIR


def test_default_out_dir_without_crate():
    assert load_settings().out_dir == ExtractSettings().out_dir


def test_crate_config_overrides_user_config(temp_dir: Path):
    user = temp_dir / "user.toml"
    user.write_text('[extract]\nworkers = 3\nclean = false\n')
    crate = temp_dir / "crate"
    crate.mkdir()
    (crate / "focxt.toml").write_text('[extract]\nworkers = 5\nout_dir = "ctx"\n')

    settings = load_settings(crate, user_config=user)

    assert settings.workers == 5
    assert settings.clean is False
    assert settings.out_dir == crate / "ctx"


def test_overrides_win(temp_dir: Path):
    (temp_dir / "focxt.toml").write_text('[extract]\nworkers = 5\n')
    settings = load_settings(temp_dir, overrides={"workers": 2, "dump_context": None})

    assert settings.workers == 2
    assert settings.dump_context is True


def test_malformed_file_ignored(temp_dir: Path):
    (temp_dir / "focxt.toml").write_text("[extract\nworkers = ")
    settings = load_settings(temp_dir)

    assert settings == ExtractSettings(out_dir=temp_dir / DEFAULT_OUT_DIR)


def test_unknown_keys_ignored(temp_dir: Path):
    (temp_dir / "focxt.toml").write_text('[extract]\ncolour = "blue"\n')
    assert load_settings(temp_dir) == ExtractSettings(out_dir=temp_dir / DEFAULT_OUT_DIR)


def test_write_default_config(temp_dir: Path):
    path = write_default_config(temp_dir)
    data = toml.load(path)

    assert path.name == "focxt.toml"
    assert set(data[config_manager.SECTION]) >= {"out_dir", "workers", "clean", "dump_context"}
    assert load_settings(temp_dir).out_dir == temp_dir / data["extract"]["out_dir"]
