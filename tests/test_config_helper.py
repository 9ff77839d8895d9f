import json

import pytest

import config_helper
import defaults


def write_config(home, data):
    home.mkdir(parents=True, exist_ok=True)
    (home / defaults.CONFIG_FILE).write_text(json.dumps(data), encoding='utf-8')


@pytest.fixture
def no_webhook_env(monkeypatch):
    # Registers the variable with monkeypatch so a value loaded from .env is undone
    monkeypatch.setenv("WEBHOOK_URL", "placeholder")
    monkeypatch.delenv("WEBHOOK_URL")


def test_config_dir_from_environment(config_home):
    assert config_helper.get_user_config_dir() == str(config_home)
    assert config_home.is_dir()


def test_defaults_when_no_file(config_home, no_webhook_env):
    assert config_helper.load_config() == defaults.DEFAULT_CONFIG


def test_ensure_config_files_writes_defaults(config_home):
    assert config_helper.ensure_config_files()
    stored = json.loads((config_home / defaults.CONFIG_FILE).read_text(encoding='utf-8'))
    assert stored == defaults.DEFAULT_CONFIG


def test_stored_values_override_defaults(config_home, no_webhook_env):
    write_config(config_home, {'MAX_FILE_SIZE_MB': 25, 'MONITOR_PATHS': "/clips"})
    config = config_helper.load_config()
    assert config['MAX_FILE_SIZE_MB'] == 25
    assert config['MONITOR_PATHS'] == ["/clips"]
    assert config['CHECK_INTERVAL'] == defaults.DEFAULT_CONFIG['CHECK_INTERVAL']


def test_malformed_config_falls_back_to_defaults(config_home, no_webhook_env):
    config_home.mkdir(parents=True)
    (config_home / defaults.CONFIG_FILE).write_text("{not json", encoding='utf-8')
    assert config_helper.load_config() == defaults.DEFAULT_CONFIG


def test_webhook_from_env_file(config_home, no_webhook_env):
    config_home.mkdir(parents=True)
    (config_home / defaults.ENV_FILE).write_text("WEBHOOK_URL=https://example.invalid/hook\n")
    assert config_helper.load_environment()
    assert config_helper.load_config()['WEBHOOK_URL'] == "https://example.invalid/hook"


def test_saved_webhook_wins_over_environment(config_home, monkeypatch):
    monkeypatch.setenv("WEBHOOK_URL", "https://example.invalid/env")
    write_config(config_home, {'WEBHOOK_URL': "https://example.invalid/saved"})
    assert config_helper.load_config()['WEBHOOK_URL'] == "https://example.invalid/saved"


def test_save_config_round_trip(config_home, no_webhook_env):
    config = dict(defaults.DEFAULT_CONFIG, USER_NAME="sam", MONITOR_PATHS=["/a", "/b"])
    assert config_helper.save_config(config)
    assert config_helper.load_config() == config


@pytest.mark.parametrize("value, expected", [(10, 10485760), (8.5, 8912896), ("25", 26214400)])
def test_max_size_bytes(value, expected):
    assert config_helper.get_max_size_bytes({'MAX_FILE_SIZE_MB': value}) == expected


@pytest.mark.parametrize("value", [0, -1])
def test_max_size_bytes_rejects_non_positive(value):
    with pytest.raises(ValueError):
        config_helper.get_max_size_bytes({'MAX_FILE_SIZE_MB': value})


def test_encode_timeout():
    assert config_helper.get_encode_timeout({}) is None
    assert config_helper.get_encode_timeout({'ENCODE_TIMEOUT': 0}) is None
    assert config_helper.get_encode_timeout({'ENCODE_TIMEOUT': 120}) == 120.0


def test_clip_stats(config_home):
    config_helper.increment_clip_count(1000)
    stats = config_helper.increment_clip_count(500)
    assert stats['TOTAL_CLIPS'] == 2
    assert stats['SESSION_CLIPS'] == 2
    assert stats['TOTAL_SIZE_BYTES'] == 1500
    assert stats['LAST_CLIP_TIME']

    stats = config_helper.reset_session_stats()
    assert stats['SESSION_CLIPS'] == 0
    assert stats['TOTAL_CLIPS'] == 2
    assert config_helper.load_stats() == stats
