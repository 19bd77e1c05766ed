import pytest

from proxbot.config import DEFAULT_POLL_INTERVAL_MS, AppConfig


ENV_KEYS = [
    "PROXMOX_HOST",
    "PROXMOX_USER",
    "PROXMOX_USERNAME",
    "PROXMOX_PASSWORD",
    "TOKEN",
    "DISCORD_TOKEN",
    "OWNER_ID",
    "TESTING_GUILD_ID",
    "TIME_BETWEEN_CHECKS",
    "PROXMOX_VERIFY_SSL",
    "PROXMOX_TIMEOUT",
    "LOG_FILE",
]


@pytest.fixture
def env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PROXMOX_HOST", "pve.local:8006")
    monkeypatch.setenv("PROXMOX_USER", "root@pam")
    monkeypatch.setenv("PROXMOX_PASSWORD", "secret")
    monkeypatch.setenv("TOKEN", "discord-token")
    return monkeypatch


def test_defaults(env, tmp_path):
    config = AppConfig(str(tmp_path))

    assert config.proxmox_host == "pve.local:8006"
    assert config.owner_id is None
    assert config.global_commands is True
    assert config.poll_interval_ms == DEFAULT_POLL_INTERVAL_MS
    assert config.poll_interval_seconds == 5.0
    assert config.verify_ssl is False
    assert config.request_timeout == 10.0


@pytest.mark.parametrize("missing", ["PROXMOX_HOST", "PROXMOX_USER", "PROXMOX_PASSWORD", "TOKEN"])
def test_missing_required_value_exits(env, tmp_path, missing):
    env.delenv(missing)

    with pytest.raises(SystemExit):
        AppConfig(str(tmp_path))


def test_legacy_variable_names(env, tmp_path):
    env.delenv("PROXMOX_USER")
    env.delenv("TOKEN")
    env.setenv("PROXMOX_USERNAME", "bot@pve")
    env.setenv("DISCORD_TOKEN", "legacy-token")

    config = AppConfig(str(tmp_path))

    assert config.proxmox_user == "bot@pve"
    assert config.token == "legacy-token"


def test_optional_values(env, tmp_path):
    env.setenv("OWNER_ID", "123456789012345678")
    env.setenv("TESTING_GUILD_ID", "42")
    env.setenv("TIME_BETWEEN_CHECKS", "15000")
    env.setenv("PROXMOX_VERIFY_SSL", "true")

    config = AppConfig(str(tmp_path))

    assert config.owner_id == 123456789012345678
    assert config.testing_guild_id == 42
    assert config.global_commands is False
    assert config.poll_interval_seconds == 15.0
    assert config.verify_ssl is True


def test_invalid_optional_values_fall_back(env, tmp_path):
    env.setenv("OWNER_ID", "not-an-id")
    env.setenv("TIME_BETWEEN_CHECKS", "soon")
    env.setenv("PROXMOX_TIMEOUT", "-1")

    config = AppConfig(str(tmp_path))

    assert config.owner_id is None
    assert config.poll_interval_ms == DEFAULT_POLL_INTERVAL_MS
    assert config.request_timeout == 10.0


def test_dotenv_file_is_loaded(env, tmp_path):
    env.delenv("PROXMOX_HOST")
    (tmp_path / ".env").write_text("PROXMOX_HOST=from-dotenv\n")

    config = AppConfig(str(tmp_path))

    assert config.proxmox_host == "from-dotenv"
