from ledgerdesk.core.config import Settings


def test_list_settings_accept_csv_and_json(monkeypatch) -> None:
    monkeypatch.setenv("GEMINI_MODEL_FALLBACKS", "gemini-a, gemini-b")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", '["https://app.example.com"]')

    settings = Settings(_env_file=None)

    assert settings.gemini_model_fallbacks == ["gemini-a", "gemini-b"]
    assert settings.cors_allow_origins == ["https://app.example.com"]


def test_database_url_is_rewritten_for_asyncpg() -> None:
    settings = Settings(_env_file=None, database_url="postgres://u:p@db:5432/ledgerdesk")

    assert settings.database_async_url == "postgresql+asyncpg://u:p@db:5432/ledgerdesk"


def test_production_flag() -> None:
    assert Settings(_env_file=None, app_env="Production").is_production
    assert not Settings(_env_file=None, app_env="development").is_production
