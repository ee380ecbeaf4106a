from sames.config import Settings


def test_defaults_keep_auth_disabled(monkeypatch):
    for name in ("SAMES_DB_PATH", "SAMES_AUTH_ENABLED", "SAMES_PORT", "SAMES_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()
    assert settings.auth_enabled is False
    assert settings.port == 3001
    assert settings.db_path == "data/sames.db"


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("SAMES_DB_PATH", "/tmp/x.db")
    monkeypatch.setenv("SAMES_AUTH_ENABLED", "true")
    monkeypatch.setenv("SAMES_PORT", "not-a-port")
    monkeypatch.setenv("SAMES_LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.db_path == "/tmp/x.db"
    assert settings.auth_enabled is True
    assert settings.port == 3001
    assert settings.log_level == "DEBUG"
