import importlib

import pytest

from ghrelay.vars import ProxyConfig, load_config, normalize_prefix, parse_flag


class TestNormalizePrefix:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, "/"),
            ("", "/"),
            ("/", "/"),
            ("gh", "/gh/"),
            ("/gh", "/gh/"),
            ("gh/", "/gh/"),
            ("  /a/b  ", "/a/b/"),
        ],
    )
    def test_values(self, raw, expected):
        assert normalize_prefix(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "/", "gh", "/x/y", " z "])
    def test_idempotent(self, raw):
        once = normalize_prefix(raw)

        assert normalize_prefix(once) == once
        assert once.startswith("/") and once.endswith("/")


def test_parse_flag():
    assert parse_flag("1")
    assert parse_flag("true")
    assert parse_flag("YES")
    assert not parse_flag("0")
    assert not parse_flag("")
    assert not parse_flag(None)


def test_load_config_from_mapping():
    config = load_config(
        {
            "PREFIX": "gh",
            "WHITE_LIST": "foo, bar,,",
            "USE_JSDELIVR": "1",
            "ALLOWED_ORIGINS": "allowed.example",
            "PUBLIC_URL": "https://relay.example/",
            "PROXY_TIMEOUT": "30",
        }
    )

    assert config.prefix == "/gh/"
    assert config.white_list == ("foo", "bar")
    assert config.use_jsdelivr is True
    assert config.allowed_origins == ("allowed.example",)
    assert config.public_url == "https://relay.example"
    assert config.proxy_timeout == 30.0


def test_load_config_defaults():
    config = load_config({})

    assert config == ProxyConfig()
    assert config.prefix == "/"
    assert config.white_list == ()
    assert config.use_jsdelivr is False
    assert "googlebot" in config.bot_user_agents


def test_load_config_reads_environment(monkeypatch):
    monkeypatch.setenv("PREFIX", "/mirror")
    monkeypatch.setenv("USE_JSDELIVR", "0")

    config = load_config()

    assert config.prefix == "/mirror/"
    assert config.use_jsdelivr is False


def test_config_is_immutable():
    config = ProxyConfig()

    with pytest.raises(Exception):
        config.prefix = "/other/"


def test_service_name_from_env(monkeypatch):
    monkeypatch.setenv("SERVICE_NAME", "relay-test")
    import ghrelay.vars as vars_module

    # Reloading rebinds ProxyConfig too; put the original objects back
    saved = dict(vars(vars_module))
    try:
        importlib.reload(vars_module)

        assert vars_module.SERVICE_NAME == "relay-test"
    finally:
        vars(vars_module).update(saved)


def test_reload_leaves_module_state_intact():
    import ghrelay.vars as vars_module

    assert vars_module.ProxyConfig is ProxyConfig
    assert vars_module.SERVICE_NAME != "relay-test"
