import json
from pathlib import Path

import pytest

from lockbot.config.loader import (
    CredentialStore,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    validate_submission,
)
from lockbot.config.schema import Config
from lockbot.errors import ConfigError


def test_missing_config_file_yields_idle_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.json")

    assert config.prefix == "/"
    assert config.bot_nickname == "HR BOT"
    assert not config.has_credentials
    assert config.timings.login_retry_seconds == 10
    assert config.timings.credential_save_interval_seconds == 600


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"timings": {"settleSeconds": -1}}'])
def test_corrupt_config_raises_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_config(path)


def test_saved_config_uses_camel_case_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    cookies = [{"key": "c_user", "value": "42", "hostOnly": False}]
    save_config(Config(cookies=cookies, admin_id="42", prefix="!"), path)

    raw = json.loads(path.read_text())
    assert raw["adminID"] == "42"
    assert raw["botNickname"] == "HR BOT"
    assert raw["cookies"] == cookies
    assert raw["timings"]["loginRetrySeconds"] == 10
    assert path.stat().st_mode & 0o777 == 0o600

    loaded = load_config(path)
    assert loaded.admin_id == "42"
    assert loaded.cookies == cookies


def test_key_conversion_leaves_cookie_keys_alone() -> None:
    data = {"adminID": "1", "cookies": [{"hostOnly": True}], "bridge": {"maxPayloadBytes": 10}}
    snake = convert_keys(data)
    assert snake == {"admin_id": "1", "cookies": [{"hostOnly": True}], "bridge": {"max_payload_bytes": 10}}
    assert convert_to_camel(snake) == data


def test_save_credentials_merges_into_existing_document(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "config.json")
    store.save_settings(cookies=[{"key": "a"}], prefix="#", admin_id="99")

    store.save_credentials([{"key": "b"}], "Warden")

    loaded = store.load()
    assert loaded.cookies == [{"key": "b"}]
    assert loaded.bot_nickname == "Warden"
    assert loaded.prefix == "#"
    assert loaded.admin_id == "99"


def test_save_credentials_replaces_unreadable_document(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("garbage")

    CredentialStore(path).save_credentials([{"key": "b"}], "HR BOT")

    assert load_config(path).cookies == [{"key": "b"}]


def test_env_overrides_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCKBOT_PREFIX", "!")
    monkeypatch.setenv("LOCKBOT_BRIDGE__URL", "ws://bridge:9000")

    config = Config()

    assert config.prefix == "!"
    assert config.bridge.url == "ws://bridge:9000"


def test_validate_submission_accepts_valid_form() -> None:
    submission = validate_submission('[{"key": "c_user", "value": "1"}]', "  ", " 1 ")

    assert submission.cookies == [{"key": "c_user", "value": "1"}]
    assert submission.prefix == "/"
    assert submission.admin_id == "1"


@pytest.mark.parametrize(
    ("cookies", "admin", "message"),
    [
        ("not json", "1", "Invalid configuration"),
        ("[]", "1", "Invalid cookies format"),
        ('{"key": "c_user"}', "1", "Invalid cookies format"),
        ('[{"key": "c_user"}]', "", "Admin ID is required"),
    ],
)
def test_validate_submission_rejects_bad_input(cookies: str, admin: str, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        validate_submission(cookies, "/", admin)
