"""Tests for the YAML/environment account configuration store."""

import yaml
import pytest

from portalauth.configuration.settings import (
    AuthType,
    CLIConfig,
    ConfigurationStore,
    Environment,
    ManagerSettings,
    Mode,
    get_valid_env,
    load_config_from_environment,
)
from portalauth.errors import (
    AccountNotFoundError,
    ConfigFileError,
    InvalidConfigError,
    MissingConfigError,
)


@pytest.fixture
def store(config_file):
    store = ConfigurationStore(config_file)
    store.load()
    return store


def _read(path):
    return yaml.safe_load(path.read_text())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def test_load_parses_accounts(store):
    assert len(store.config.accounts) == 3
    assert store.get_default_account() == "prod-portal"
    assert store.validate()


def test_missing_file_loads_empty_config(tmp_path):
    store = ConfigurationStore(tmp_path / "absent.yml")

    assert store.load() == CLIConfig()
    assert store.config_is_empty()


def test_config_path_from_environment(tmp_path, monkeypatch, config_file):
    monkeypatch.setenv("PORTALAUTH_CONFIG_PATH", str(config_file))

    assert ConfigurationStore().config_path == config_file


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("accounts: [unclosed")

    with pytest.raises(InvalidConfigError, match="not valid YAML"):
        ConfigurationStore(path).load()


def test_invalid_account_raises(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({"accounts": [{"account_id": 1, "name": "has space"}]}))

    with pytest.raises(InvalidConfigError, match="cannot contain spaces"):
        ConfigurationStore(path).load()


def test_unreadable_file_raises_config_file_error(tmp_path):
    path = tmp_path / "config.yml"
    path.mkdir()

    with pytest.raises(ConfigFileError) as exc_info:
        ConfigurationStore(path).load()

    assert exc_info.value.operation == "read"
    assert str(path) in str(exc_info.value)


def test_validate_rejects_duplicates(store):
    duplicate = store.config.accounts[0].model_copy()
    store.config.accounts.append(duplicate)

    assert not store.validate()


def test_validate_without_config():
    assert not ConfigurationStore("unused.yml").validate()


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def test_get_account_by_name_id_and_default(store):
    assert store.get_account("legacy").account_id == 456
    assert store.get_account(789).name == "oauth-app"
    assert store.get_account("789").name == "oauth-app"
    assert store.get_account().account_id == 123
    assert store.get_account("nope") is None
    assert store.get_account_id("legacy") == 456
    assert store.is_account_in_config("oauth-app")
    assert store.get_config_account_index(789) == 2
    assert store.get_config_account_index(1) == -1


def test_get_env_defaults_to_prod(store):
    assert store.get_env("legacy") == Environment.QA
    assert store.get_env(123) == Environment.PROD
    assert store.get_env("unknown") == Environment.PROD


def test_account_config_contract(store):
    assert store.get_account_auth_type(123) == AuthType.PERSONAL_ACCESS_KEY
    assert store.get_stored_secret(123) == "pak-secret"
    assert store.get_stored_secret(456) == "api-secret"
    assert store.get_stored_secret(789) == "refresh-1"
    assert store.get_account_auth_type(999) is None
    assert store.get_stored_secret(999) is None


def test_secrets_are_masked_in_repr(store):
    assert "pak-secret" not in repr(store.get_account(123))


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def test_update_config_for_account_merges_fields(store, config_file):
    updated = store.update_config_for_account(
        {"account_id": 123, "name": None, "default_mode": "DRAFT", "env": "qa"}
    )

    assert updated.name == "prod-portal"
    assert updated.default_mode == Mode.DRAFT
    assert updated.env == Environment.QA
    saved = _read(config_file)
    assert saved["accounts"][0]["env"] == "qa"
    assert saved["accounts"][0]["personal_access_key"] == "pak-secret"


def test_update_config_for_account_appends_new_account(store, config_file):
    store.update_config_for_account(
        {"account_id": 1000, "name": "new", "auth_type": "apikey", "api_key": "k"}
    )

    saved = _read(config_file)
    assert saved["accounts"][-1]["account_id"] == 1000
    assert saved["accounts"][-1]["api_key"] == "k"


def test_update_config_for_account_merges_oauth_fields(store):
    updated = store.update_config_for_account(
        {"account_id": 789, "scopes": ["content", "forms"]}, write=False
    )

    assert updated.auth.client_id == "client-1"
    assert updated.auth.scopes == ["content", "forms"]


def test_update_requires_account_id(store):
    with pytest.raises(MissingConfigError):
        store.update_config_for_account({"name": "x"})


def test_write_is_atomic_and_private(store, config_file):
    store.write()

    assert not config_file.with_suffix(".tmp").exists()
    assert config_file.stat().st_mode & 0o777 == 0o600


def test_rename_account_updates_default(store, config_file):
    store.rename_account("prod-portal", "main")

    saved = _read(config_file)
    assert saved["default_account"] == "main"
    assert saved["accounts"][0]["name"] == "main"


def test_rename_unknown_account(store):
    with pytest.raises(AccountNotFoundError):
        store.rename_account("ghost", "other")


def test_remove_account_reports_default(store, config_file):
    assert store.remove_account("prod-portal") is True
    assert store.remove_account(456) is False

    saved = _read(config_file)
    assert [a["account_id"] for a in saved["accounts"]] == [789]

    with pytest.raises(AccountNotFoundError):
        store.remove_account("prod-portal")


def test_update_default_mode(store):
    store.update_default_mode("draft")
    assert store.config.default_mode == Mode.DRAFT

    with pytest.raises(InvalidConfigError, match="Valid modes"):
        store.update_default_mode("preview")


def test_update_http_timeout_enforces_minimum(store):
    store.update_http_timeout("5000")
    assert store.config.http_timeout == 5000

    with pytest.raises(InvalidConfigError):
        store.update_http_timeout(2999)
    with pytest.raises(InvalidConfigError):
        store.update_http_timeout("soon")


def test_update_allow_usage_tracking(store):
    store.update_allow_usage_tracking(False)
    assert store.config.allow_usage_tracking is False

    with pytest.raises(InvalidConfigError):
        store.update_allow_usage_tracking("yes")


def test_update_default_account(store):
    store.update_default_account(456)
    assert store.get_account().name == "legacy"

    with pytest.raises(InvalidConfigError):
        store.update_default_account("")


def test_delete_only_removes_empty_config(store, config_file, tmp_path):
    store.delete()
    assert config_file.exists()

    empty = tmp_path / "empty.yml"
    empty.write_text("")
    empty_store = ConfigurationStore(empty)
    empty_store.delete()
    assert not empty.exists()


# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------


def test_environment_prefers_personal_access_key():
    config = load_config_from_environment(
        {
            "PORTALAUTH_ACCOUNT_ID": "123",
            "PORTALAUTH_PERSONAL_ACCESS_KEY": "pak",
            "PORTALAUTH_CLIENT_ID": "id",
            "PORTALAUTH_CLIENT_SECRET": "secret",
            "PORTALAUTH_REFRESH_TOKEN": "refresh",
            "PORTALAUTH_API_KEY": "key",
            "PORTALAUTH_ENVIRONMENT": "QA",
        }
    )

    account = config.accounts[0]
    assert config.default_account == 123
    assert account.auth_type == AuthType.PERSONAL_ACCESS_KEY
    assert account.env == Environment.QA


def test_environment_oauth_needs_all_three_values():
    partial = load_config_from_environment(
        {
            "PORTALAUTH_ACCOUNT_ID": "123",
            "PORTALAUTH_CLIENT_ID": "id",
            "PORTALAUTH_CLIENT_SECRET": "secret",
            "PORTALAUTH_API_KEY": "key",
        }
    )
    full = load_config_from_environment(
        {
            "PORTALAUTH_ACCOUNT_ID": "123",
            "PORTALAUTH_CLIENT_ID": "id",
            "PORTALAUTH_CLIENT_SECRET": "secret",
            "PORTALAUTH_REFRESH_TOKEN": "refresh",
        }
    )

    assert partial.accounts[0].auth_type == AuthType.API_KEY
    assert full.accounts[0].auth_type == AuthType.OAUTH2
    assert full.accounts[0].auth.token_info.refresh_token.get_secret_value() == "refresh"


@pytest.mark.parametrize(
    "environ",
    [
        {},
        {"PORTALAUTH_ACCOUNT_ID": "abc", "PORTALAUTH_API_KEY": "key"},
        {"PORTALAUTH_ACCOUNT_ID": "123"},
    ],
)
def test_environment_without_usable_values(environ):
    assert load_config_from_environment(environ) is None


def test_env_config_is_never_written(tmp_path, monkeypatch):
    monkeypatch.setenv("PORTALAUTH_ACCOUNT_ID", "123")
    monkeypatch.setenv("PORTALAUTH_API_KEY", "key")
    path = tmp_path / "config.yml"
    store = ConfigurationStore(path, use_env=True)

    store.load()
    store.update_default_mode("draft")

    assert store.use_env_config
    assert store.get_stored_secret(123) == "key"
    assert not path.exists()


def test_get_valid_env():
    assert get_valid_env(None) == Environment.PROD
    assert get_valid_env(" QA ") == Environment.QA
    assert get_valid_env("staging") == Environment.PROD


# ---------------------------------------------------------------------------
# Manager settings
# ---------------------------------------------------------------------------


def test_manager_settings_defaults():
    settings = ManagerSettings()

    assert settings.refresh_buffer_seconds == 300
    assert settings.http_timeout_seconds == 15.0
    assert settings.audit_dir is None


def test_manager_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PORTALAUTH_REFRESH_BUFFER_SECONDS", "120")
    monkeypatch.setenv("PORTALAUTH_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("PORTALAUTH_AUDIT_DIR", str(tmp_path))

    settings = ManagerSettings.from_env()

    assert settings.refresh_buffer_seconds == 120
    assert settings.http_timeout_seconds == 2.5
    assert settings.audit_dir == tmp_path
