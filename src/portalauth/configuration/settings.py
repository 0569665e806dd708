"""Typed account configuration for the portalauth CLI.

Accounts live in a YAML config file (``~/.portalauth/config.yml`` by default)
or, for CI usage, in environment variables. The ``ConfigurationStore`` is the
read/write entry point used by the credential resolver and the CLI. Writes are
guarded by a file lock and replace the file atomically.
"""

from __future__ import annotations

import logging
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from filelock import FileLock
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from ..errors import (
    AccountNotFoundError,
    ConfigFileError,
    InvalidConfigError,
    MissingConfigError,
)

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path.home() / ".portalauth" / "config.yml"
MIN_HTTP_TIMEOUT = 3000

ENVIRONMENT_VARIABLES = {
    "account_id": "PORTALAUTH_ACCOUNT_ID",
    "env": "PORTALAUTH_ENVIRONMENT",
    "personal_access_key": "PORTALAUTH_PERSONAL_ACCESS_KEY",
    "client_id": "PORTALAUTH_CLIENT_ID",
    "client_secret": "PORTALAUTH_CLIENT_SECRET",
    "refresh_token": "PORTALAUTH_REFRESH_TOKEN",
    "api_key": "PORTALAUTH_API_KEY",
}

DEFAULT_OAUTH_SCOPES = ["content"]


class AuthType(str, Enum):
    """Authentication strategies an account can be configured with."""

    API_KEY = "apikey"
    OAUTH2 = "oauth2"
    PERSONAL_ACCESS_KEY = "personalaccesskey"


class Environment(str, Enum):
    PROD = "prod"
    QA = "qa"


class Mode(str, Enum):
    PUBLISH = "publish"
    DRAFT = "draft"


def get_valid_env(value: Optional[str], default: Optional[Environment] = Environment.PROD) -> Optional[Environment]:
    """Map a loose environment string onto a known environment."""
    if not value:
        return default
    return Environment.QA if value.strip().lower() == "qa" else Environment.PROD


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class OAuthTokenInfo(BaseModel):
    """Persisted OAuth2 token state."""

    refresh_token: Optional[SecretStr] = Field(default=None, description="OAuth2 refresh token")
    access_token: Optional[SecretStr] = Field(default=None, description="Last issued access token")
    expires_at: Optional[str] = Field(default=None, description="ISO expiry of the access token")


class OAuthSettings(BaseModel):
    """OAuth2 application settings for an account."""

    client_id: Optional[str] = Field(default=None, description="OAuth2 client id")
    client_secret: Optional[SecretStr] = Field(default=None, description="OAuth2 client secret")
    scopes: List[str] = Field(default_factory=list, description="Scopes granted to the app")
    token_info: OAuthTokenInfo = Field(default_factory=OAuthTokenInfo)


class AccountConfig(BaseModel):
    """A single configured account."""

    account_id: int = Field(..., gt=0, description="Numeric account identifier")
    name: Optional[str] = Field(default=None, description="Unique account alias")
    auth_type: Optional[AuthType] = Field(default=None, description="Authentication strategy")
    env: Environment = Field(default=Environment.PROD)
    api_key: Optional[SecretStr] = Field(default=None)
    personal_access_key: Optional[SecretStr] = Field(default=None)
    auth: Optional[OAuthSettings] = Field(default=None)
    default_mode: Optional[Mode] = Field(default=None)
    parent_account_id: Optional[int] = Field(default=None)
    sandbox_account_type: Optional[str] = Field(default=None)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and re.search(r"\s", value):
            raise ValueError(f"account name '{value}' cannot contain spaces")
        return value


class CLIConfig(BaseModel):
    """Root configuration state."""

    default_account: Optional[Union[int, str]] = Field(default=None)
    default_mode: Optional[Mode] = Field(default=None)
    http_timeout: Optional[int] = Field(default=None, description="HTTP timeout in ms")
    allow_usage_tracking: Optional[bool] = Field(default=None)
    env: Optional[Environment] = Field(default=None)
    accounts: List[AccountConfig] = Field(default_factory=list)


class ManagerSettings(BaseModel):
    """Tunables for the credential manager and its HTTP collaborators."""

    refresh_buffer_seconds: int = Field(300, ge=0, description="Refresh this long before expiry")
    http_timeout_seconds: float = Field(15.0, gt=0)
    audit_dir: Optional[Path] = Field(default=None, description="Audit log directory")

    @classmethod
    def from_env(cls) -> "ManagerSettings":
        data: Dict[str, Any] = {}
        _set_env_override(data, "refresh_buffer_seconds", "PORTALAUTH_REFRESH_BUFFER_SECONDS", cast_int=True)
        _set_env_override(data, "http_timeout_seconds", "PORTALAUTH_HTTP_TIMEOUT", cast_float=True)
        _set_env_override(data, "audit_dir", "PORTALAUTH_AUDIT_DIR")
        return cls.model_validate(data)


def _set_env_override(
    mapping: Dict[str, Any],
    key: str,
    env_name: str,
    *,
    cast_int: bool = False,
    cast_float: bool = False,
) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    if cast_int:
        mapping[key] = int(raw)
    elif cast_float:
        mapping[key] = float(raw)
    else:
        mapping[key] = raw


# ---------------------------------------------------------------------------
# Environment loading
# ---------------------------------------------------------------------------


def load_config_from_environment(environ: Optional[Dict[str, str]] = None) -> Optional[CLIConfig]:
    """Build a single-account config from ``PORTALAUTH_*`` variables.

    Personal access keys win over OAuth2 credentials, which win over API keys.
    Returns None when the account id or every credential is missing.
    """
    env_vars = os.environ if environ is None else environ
    values = {key: env_vars.get(name) for key, name in ENVIRONMENT_VARIABLES.items()}

    raw_account_id = values["account_id"]
    try:
        account_id = int(raw_account_id) if raw_account_id else None
    except ValueError:
        account_id = None
    if not account_id:
        logger.debug("Unable to load config from environment: missing account id")
        return None

    env = get_valid_env(values["env"])
    account: Dict[str, Any] = {"account_id": account_id, "env": env}

    if values["personal_access_key"]:
        account.update(
            auth_type=AuthType.PERSONAL_ACCESS_KEY,
            personal_access_key=values["personal_access_key"],
        )
    elif values["client_id"] and values["client_secret"] and values["refresh_token"]:
        account.update(
            auth_type=AuthType.OAUTH2,
            auth={
                "client_id": values["client_id"],
                "client_secret": values["client_secret"],
                "scopes": list(DEFAULT_OAUTH_SCOPES),
                "token_info": {"refresh_token": values["refresh_token"]},
            },
        )
    elif values["api_key"]:
        account.update(auth_type=AuthType.API_KEY, api_key=values["api_key"])
    else:
        logger.debug("Unable to load config from environment: unknown auth type")
        return None

    return CLIConfig(default_account=account_id, env=env, accounts=[AccountConfig(**account)])


# ---------------------------------------------------------------------------
# Configuration store
# ---------------------------------------------------------------------------


def _reveal(value: Any) -> Any:
    return value.get_secret_value() if isinstance(value, SecretStr) else value


def _dump_config(config: CLIConfig) -> Dict[str, Any]:
    payload = config.model_dump(mode="python", exclude_none=True)
    return _unwrap_secrets(payload)


def _unwrap_secrets(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _unwrap_secrets(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unwrap_secrets(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return _reveal(value)


class ConfigurationStore:
    """Loads, validates and persists account configuration.

    Also satisfies the account-config contract used by the credential
    resolver (``get_account_auth_type`` / ``get_stored_secret``).
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        use_env: bool = False,
    ) -> None:
        env_path = os.getenv("PORTALAUTH_CONFIG_PATH")
        self.config_path = Path(config_path or env_path or DEFAULT_CONFIG_PATH).expanduser()
        self.use_env = use_env
        self.use_env_config = False
        self.config: Optional[CLIConfig] = None
        self._lock = FileLock(str(self.config_path.with_suffix(".lock")))

    # ------------------------------------------------------------------
    # Load / write
    # ------------------------------------------------------------------

    def load(self) -> Optional[CLIConfig]:
        if self.use_env:
            config_from_env = load_config_from_environment()
            if config_from_env:
                logger.debug(
                    f"Loaded config from environment for account {config_from_env.accounts[0].account_id}"
                )
                self.use_env_config = True
                self.config = config_from_env
                return self.config

        self.use_env_config = False
        self.config = self._load_from_file()
        logger.debug(f"Loaded config from {self.config_path}")
        return self.config

    def _load_from_file(self) -> CLIConfig:
        if not self.config_path.exists():
            logger.debug("Config file not found, starting with an empty config")
            return CLIConfig()
        try:
            with self._lock:
                with open(self.config_path, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigFileError("read", self.config_path, message=str(exc)) from exc
        except yaml.YAMLError as exc:
            raise InvalidConfigError(f"Config file {self.config_path} is not valid YAML: {exc}") from exc

        if not data:
            return CLIConfig()
        try:
            return CLIConfig.model_validate(data)
        except ValidationError as exc:
            error_details = [
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
            raise InvalidConfigError(
                f"Invalid configuration: {'; '.join(error_details)}"
            ) from exc

    def write(self, updated_config: Optional[CLIConfig] = None) -> Optional[CLIConfig]:
        """Persist the config file; a no-op for environment-based configs."""
        if self.use_env_config:
            return self.config
        if updated_config is not None:
            self.config = updated_config
        if self.config is None:
            return None

        data = _dump_config(self.config)
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                tmp = self.config_path.with_suffix(".tmp")
                with open(tmp, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.config_path)
        except OSError as exc:
            raise ConfigFileError("write", self.config_path, message=str(exc)) from exc
        return self.config

    def config_is_empty(self) -> bool:
        if not self.config_path.exists() or not self.config_path.read_text(encoding="utf-8").strip():
            return True
        self.load()
        return self.config is None or not self.config.accounts

    def delete(self) -> None:
        """Remove the config file when it holds no accounts."""
        if not self.use_env_config and self.config_is_empty():
            self.config_path.unlink(missing_ok=True)
            self.config = None

    def validate(self) -> bool:
        if self.config is None:
            logger.error("Validation failed: no config was found")
            return False

        seen_ids: set[int] = set()
        seen_names: set[str] = set()
        for account in self.config.accounts:
            if account.account_id in seen_ids:
                logger.error(
                    f"Validation failed: multiple accounts with account_id={account.account_id}"
                )
                return False
            if account.name:
                if account.name in seen_names:
                    logger.error(f"Validation failed: multiple accounts with name={account.name}")
                    return False
                seen_names.add(account.name)
            seen_ids.add(account.account_id)
        return True

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _require_config(self) -> CLIConfig:
        if self.config is None:
            self.load()
        if self.config is None:
            raise MissingConfigError("No config loaded")
        return self.config

    def get_default_account(self) -> Optional[Union[int, str]]:
        if self.config is None:
            return None
        return self.config.default_account

    def get_account(self, name_or_id: Optional[Union[int, str]] = None) -> Optional[AccountConfig]:
        if self.config is None:
            return None

        target = name_or_id if name_or_id not in (None, "") else self.get_default_account()
        if target in (None, ""):
            return None

        if isinstance(target, int) or (isinstance(target, str) and target.isdigit()):
            account_id = int(target)
            return next((a for a in self.config.accounts if a.account_id == account_id), None)
        return next((a for a in self.config.accounts if a.name == target), None)

    def get_account_id(self, name_or_id: Optional[Union[int, str]] = None) -> Optional[int]:
        account = self.get_account(name_or_id)
        return account.account_id if account else None

    def get_config_account_index(self, account_id: int) -> int:
        if self.config is None:
            return -1
        for index, account in enumerate(self.config.accounts):
            if account.account_id == account_id:
                return index
        return -1

    def is_account_in_config(self, name_or_id: Union[int, str]) -> bool:
        return self.get_account_id(name_or_id) is not None

    def get_env(self, name_or_id: Optional[Union[int, str]] = None) -> Environment:
        account = self.get_account(name_or_id)
        if account is not None:
            return account.env
        if self.config is not None and self.config.env:
            return self.config.env
        return Environment.PROD

    def get_account_auth_type(self, account_id: int) -> Optional[AuthType]:
        account = self.get_account(account_id)
        return account.auth_type if account else None

    def get_stored_secret(self, account_id: int) -> Optional[str]:
        """Return the primary stored secret for the account's auth type."""
        account = self.get_account(account_id)
        if account is None:
            return None
        if account.auth_type == AuthType.PERSONAL_ACCESS_KEY:
            return _reveal(account.personal_access_key)
        if account.auth_type == AuthType.API_KEY:
            return _reveal(account.api_key)
        if account.auth_type == AuthType.OAUTH2 and account.auth is not None:
            return _reveal(account.auth.token_info.refresh_token)
        return None

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_config_for_account(
        self,
        fields: Dict[str, Any],
        *,
        write: bool = True,
    ) -> Optional[AccountConfig]:
        """Merge ``fields`` over an existing account or append a new one.

        ``None`` values never overwrite existing values.
        """
        account_id = fields.get("account_id")
        if not account_id:
            raise MissingConfigError("An account_id is required to update the config")
        config = self._require_config()

        current = self.get_account(int(account_id))
        merged: Dict[str, Any] = current.model_dump() if current else {}

        oauth_fields = {
            key: fields[key]
            for key in ("client_id", "client_secret", "scopes", "token_info")
            if fields.get(key) is not None
        }
        if oauth_fields:
            auth = dict(merged.get("auth") or {})
            auth.update(oauth_fields)
            merged["auth"] = auth

        for key in (
            "name",
            "account_id",
            "auth_type",
            "personal_access_key",
            "sandbox_account_type",
            "parent_account_id",
        ):
            if fields.get(key) is not None:
                merged[key] = fields[key]

        env = fields.get("env") or merged.get("env")
        merged["env"] = get_valid_env(env.value if isinstance(env, Enum) else env)
        if fields.get("default_mode") is not None:
            merged["default_mode"] = Mode(str(_enum_value(fields["default_mode"])).lower())
        if _enum_value(merged.get("auth_type")) == AuthType.API_KEY.value and fields.get("api_key") is not None:
            merged["api_key"] = fields["api_key"]

        try:
            updated = AccountConfig.model_validate(merged)
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid account config: {exc}") from exc

        if current is not None:
            logger.debug(f"Updating config for account {updated.account_id}")
            config.accounts[self.get_config_account_index(current.account_id)] = updated
        else:
            logger.debug(f"Adding config entry for account {updated.account_id}")
            config.accounts.append(updated)

        if write:
            self.write()
        return updated

    def update_default_account(self, default_account: Union[int, str]) -> Optional[CLIConfig]:
        config = self._require_config()
        if default_account in (None, "") or not isinstance(default_account, (int, str)):
            raise InvalidConfigError(f"Invalid default account: {default_account!r}")
        config.default_account = default_account
        return self.write()

    def rename_account(self, current_name: str, new_name: str) -> None:
        self._require_config()
        account = self.get_account(current_name)
        if account is None:
            raise AccountNotFoundError(current_name)

        self.update_config_for_account({"account_id": account.account_id, "name": new_name})
        if account.name is not None and account.name == self.get_default_account():
            self.update_default_account(new_name)

    def remove_account(self, name_or_id: Union[int, str]) -> bool:
        """Remove an account; returns True when it was the default account."""
        config = self._require_config()
        account = self.get_account(name_or_id)
        if account is None:
            raise AccountNotFoundError(name_or_id)

        logger.debug(f"Removing account {account.account_id} from config")
        config.accounts.pop(self.get_config_account_index(account.account_id))
        default = self.get_default_account()
        was_default = default is not None and default in (account.name, account.account_id, str(account.account_id))
        self.write()
        return was_default

    def update_default_mode(self, default_mode: str) -> Optional[CLIConfig]:
        config = self._require_config()
        try:
            mode = Mode(default_mode)
        except ValueError as exc:
            valid = ", ".join(m.value for m in Mode)
            raise InvalidConfigError(
                f"Invalid default mode '{default_mode}'. Valid modes: {valid}"
            ) from exc
        config.default_mode = mode
        return self.write()

    def update_http_timeout(self, timeout: Union[int, str]) -> Optional[CLIConfig]:
        config = self._require_config()
        try:
            parsed = int(timeout)
        except (TypeError, ValueError):
            parsed = None
        if parsed is None or parsed < MIN_HTTP_TIMEOUT:
            raise InvalidConfigError(
                f"Invalid HTTP timeout '{timeout}'. Minimum is {MIN_HTTP_TIMEOUT}ms"
            )
        config.http_timeout = parsed
        return self.write()

    def update_allow_usage_tracking(self, is_enabled: bool) -> Optional[CLIConfig]:
        config = self._require_config()
        if not isinstance(is_enabled, bool):
            raise InvalidConfigError(f"Invalid usage tracking value: {is_enabled!r}")
        config.allow_usage_tracking = is_enabled
        return self.write()


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


__all__ = [
    "AccountConfig",
    "AuthType",
    "CLIConfig",
    "ConfigurationStore",
    "DEFAULT_CONFIG_PATH",
    "ENVIRONMENT_VARIABLES",
    "Environment",
    "MIN_HTTP_TIMEOUT",
    "ManagerSettings",
    "Mode",
    "OAuthSettings",
    "OAuthTokenInfo",
    "get_valid_env",
    "load_config_from_environment",
]
