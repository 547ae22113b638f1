from chat_router.settings import DEFAULT_GATEWAY_URL, get_settings, reset_settings_cache


def test_defaults():
    settings = get_settings()
    assert settings.gateway_api_key is None
    assert settings.gateway_base_url == DEFAULT_GATEWAY_URL
    assert (settings.rate_limit, settings.rate_window_seconds) == (20, 60)
    assert (settings.duplicate_window_seconds, settings.duplicate_cache_size) == (30.0, 10)
    assert settings.database_url is None
    assert settings.cors_origins == ()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AI_GATEWAY_API_KEY", "key")
    monkeypatch.setenv("CHAT_RATE_LIMIT", "5")
    monkeypatch.setenv("ADMIN_UI_ORIGINS", "https://a.example, ,https://b.example")
    monkeypatch.setenv("EXPOSE_METRICS", "no")
    reset_settings_cache()

    settings = get_settings()
    assert settings.gateway_api_key == "key"
    assert settings.rate_limit == 5
    assert settings.cors_origins == ("https://a.example", "https://b.example")
    assert settings.expose_metrics is False


def test_settings_are_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("CHAT_RATE_LIMIT", "3")
    assert get_settings() is first
    reset_settings_cache()
    assert get_settings().rate_limit == 3
