from config import Settings


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "mongodb://db:27017")
    monkeypatch.setenv("DATABASE_NAME", "ic")
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("JWT_EXPIRES_MINUTES", "15")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://app.example.org")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    settings = Settings.from_env()
    assert settings.database_url == "mongodb://db:27017"
    assert settings.database_name == "ic"
    assert settings.jwt_secret == "s3cret"
    assert settings.jwt_expires_minutes == 15
    assert settings.cors_origins == ["http://localhost:3000", "https://app.example.org"]
    assert settings.redis_url == "redis://cache:6379/0"


def test_missing_secret_gets_random_value(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("JWT_EXPIRES_MINUTES", raising=False)
    first = Settings.from_env()
    second = Settings.from_env()
    assert first.jwt_secret and first.jwt_secret != second.jwt_secret
    assert first.redis_url is None
    assert first.jwt_expires_minutes == 60


def test_module_exposes_asgi_app():
    from fastapi import FastAPI

    import main
    assert isinstance(main.app, FastAPI)
    assert main.app.state.ctx.settings is main.settings
    assert {"/healthz", "/ws"} <= {route.path for route in main.app.routes}
