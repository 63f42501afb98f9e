import pytest

from vod_bot.config import DEFAULT_API_TIMEOUT_SECONDS, get_configuration


def test_get_configuration_happy_path(mocker):
    config_data = """
[telegram]
bot_token=TEST_TOKEN
admin_user_ids=1, 2, nope

[api]
base_url=http://proxy.local:8080/
api_key=SECRET
timeout_seconds=5
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)

    config = get_configuration()

    assert config.token == "TEST_TOKEN"
    assert config.admin_user_ids == [1, 2]
    assert config.api.base_url == "http://proxy.local:8080"
    assert config.api.api_key == "SECRET"
    assert config.api.timeout == 5.0


def test_get_configuration_defaults(mocker):
    config_data = """
[telegram]
bot_token=TEST_TOKEN

[api]
base_url=http://proxy.local
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)

    config = get_configuration()

    assert config.admin_user_ids == []
    assert config.api.api_key == ""
    assert config.api.timeout == DEFAULT_API_TIMEOUT_SECONDS


def test_get_configuration_missing_file(mocker):
    mocker.patch("os.path.exists", return_value=False)
    with pytest.raises(SystemExit):
        get_configuration()


def test_get_configuration_missing_token(mocker):
    config_data = """
[telegram]
bot_token=PLACE_TOKEN_HERE

[api]
base_url=http://proxy.local
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)
    with pytest.raises(SystemExit):
        get_configuration()


def test_get_configuration_missing_base_url(mocker):
    config_data = """
[telegram]
bot_token=TEST_TOKEN
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)
    with pytest.raises(ValueError):
        get_configuration()
