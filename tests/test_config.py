import json

from app.config.settings import Config, Environment


def test_environment_overrides_defaults(tmp_path):
    env = Environment(
        config_path=str(tmp_path / "missing.json"),
        yt_api_key="abc",
        use_yt_dlp="false",
        download_timeout=42,
        log_level="debug",
    )

    config = Config.load_from_env(env)

    assert config.youtube.api_key == "abc"
    assert config.download.use_external_binary is False
    assert config.download.attempt_timeout == 42
    assert config.logging.level == "DEBUG"


def test_defaults():
    config = Config()

    assert config.download.use_external_binary is True
    assert config.download.attempt_timeout == 300
    assert config.tiktok.navigation_timeout == 30
    assert config.tiktok.max_redirects == 5
    assert config.youtube.metadata_timeout == 10


def test_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ytdlp": {"binary": "/opt/yt-dlp"}, "i18n": {"default_locale": "ja"}}))

    config = Config.load_from_file(str(path))

    assert config.ytdlp.binary == "/opt/yt-dlp"
    assert config.i18n.default_locale == "ja"


def test_broken_config_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert Config.load_from_file(str(path)) == Config()
