from __future__ import annotations

import os
import re
import shlex
from pathlib import Path
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigurationError


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_LOGIN_SELECTOR_DELAY_MS = 250.0


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_ms(name: str) -> Optional[float]:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return None
    return float(raw)


def _env_login_selector_delay(name: str) -> Union[bool, float]:
    """
    "false"/"no"/"off" disables the delay entirely; a number is milliseconds; empty keeps the default.
    """
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return DEFAULT_LOGIN_SELECTOR_DELAY_MS
    if raw in {"false", "f", "no", "n", "off"}:
        return False
    return float(raw)


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so a `.env` file is enough for the common case; YAML is an optional override.
    """
    return {
        "login": {
            "username": os.getenv("SOCIAL_LOGIN_USERNAME", ""),
            "password": os.getenv("SOCIAL_LOGIN_PASSWORD", ""),
            "login_url": os.getenv("SOCIAL_LOGIN_URL", ""),
            "login_selector": os.getenv("SOCIAL_LOGIN_SELECTOR", ""),
            "post_login_selector": os.getenv("SOCIAL_LOGIN_POST_LOGIN_SELECTOR", ""),
            "pre_login_selector": os.getenv("SOCIAL_LOGIN_PRE_LOGIN_SELECTOR") or None,
            "user_consent_selector": os.getenv("SOCIAL_LOGIN_CONSENT_SELECTOR") or None,
            "login_selector_delay": _env_login_selector_delay("SOCIAL_LOGIN_SELECTOR_DELAY_MS"),
            "is_popup": _env_bool("SOCIAL_LOGIN_IS_POPUP"),
            "popup_delay": _env_ms("SOCIAL_LOGIN_POPUP_DELAY_MS"),
            "cookie_delay": _env_ms("SOCIAL_LOGIN_COOKIE_DELAY_MS"),
            "headless": _env_bool("SOCIAL_LOGIN_HEADLESS"),
            "args": shlex.split(os.getenv("SOCIAL_LOGIN_ARGS", "")),
            "logs": _env_bool("SOCIAL_LOGIN_LOGS"),
            "get_all_browser_cookies": _env_bool("SOCIAL_LOGIN_ALL_COOKIES"),
            "wait_timeout_ms": _env_ms("SOCIAL_LOGIN_WAIT_TIMEOUT_MS"),
            "screenshot_path": os.getenv("SOCIAL_LOGIN_SCREENSHOT_PATH", "screenshot.png"),
            "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
        },
        "output": {
            "result_path": os.getenv("RESULT_PATH", "data/session.json"),
            "storage_state_path": os.getenv("STORAGE_STATE_PATH", ""),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/social_login.log"),
        },
    }


class SocialLoginConfig(BaseModel):
    """
    Everything one login run needs: credentials, URLs, selectors, timing knobs and flags.

    Field names are snake_case; the camelCase spelling (`loginUrl`, `isPopup`, `getAllBrowserCookies`, ...)
    is accepted as an alias so option mappings written for other tooling can be passed through as-is.

    Delays are in milliseconds. `login_selector_delay` is only skipped for an explicit `False`;
    `popup_delay` and `cookie_delay` are skipped for any falsy value.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    username: str = ""
    password: str = Field(default="", repr=False)
    login_url: str
    login_selector: str
    post_login_selector: str

    pre_login_selector: Optional[str] = None
    user_consent_selector: Optional[str] = None
    login_selector_delay: Union[bool, float, None] = DEFAULT_LOGIN_SELECTOR_DELAY_MS
    is_popup: bool = False
    popup_delay: Optional[float] = None
    cookie_delay: Optional[float] = None

    headless: bool = False
    args: list[str] = Field(default_factory=list)
    logs: bool = False
    get_all_browser_cookies: bool = False

    # None -> Playwright's own default (30s)
    wait_timeout_ms: Optional[float] = None
    screenshot_path: str = "screenshot.png"
    debug_dir: str = ""

    @model_validator(mode="after")
    def _validate_targets(self) -> "SocialLoginConfig":
        for name in ("login_url", "login_selector", "post_login_selector"):
            if not (getattr(self, name) or "").strip():
                raise ValueError(f"login.{name} is required")

        parsed = urlparse(self.login_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"login.login_url must be a full URL like 'https://example.com/login' (got {self.login_url!r})")
        return self

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump()
        data["password"] = "***" if self.password else ""
        return data


class OutputConfig(BaseModel):
    result_path: str = "data/session.json"
    # Optional Playwright storage_state file for reusing the session in a later browser context.
    storage_state_path: str = ""


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/social_login.log"


class AppConfig(BaseModel):
    login: SocialLoginConfig
    output: OutputConfig = OutputConfig()
    logging: LoggingConfig = LoggingConfig()


def validate_credentials(config: SocialLoginConfig) -> None:
    if not config.username or not config.password:
        raise ConfigurationError("Username or Password missing for social login")


def coerce_config(value: Union[SocialLoginConfig, Mapping[str, Any]]) -> SocialLoginConfig:
    if isinstance(value, SocialLoginConfig):
        return value
    try:
        return SocialLoginConfig.model_validate(dict(value))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid social login configuration: {e}") from e


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    try:
        return AppConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration ({p}): {e}") from e
