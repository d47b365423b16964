from pathlib import Path

from chartsignal.core.config import get_settings


def test_settings_read_environment(monkeypatch, tmp_path):
    get_settings.cache_clear()
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "d"))
    monkeypatch.setenv("VISION_PROVIDER", "gemini")
    monkeypatch.setenv("VISION_TIMEOUT_SEC", "7.5")

    settings = get_settings()

    assert settings.history_file == Path(tmp_path / "d" / "history.json")
    assert settings.vision_provider == "gemini"
    assert settings.vision_timeout_sec == 7.5
    get_settings.cache_clear()
