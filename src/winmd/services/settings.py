"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..utils.file_io import write_text

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "AVAILABLE_MODELS",
    "PROVIDER_CHOICES",
    "LANGUAGE_CHOICES",
    "normalize_provider",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".winmd"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1

AVAILABLE_MODELS: tuple[tuple[str, str], ...] = (
    ("gemini-3-flash-preview", "Gemini 3 Flash (Fast)"),
    ("gemini-3-pro-preview", "Gemini 3 Pro (Smart)"),
)
PROVIDER_CHOICES: tuple[str, ...] = ("gemini", "openai")
LANGUAGE_CHOICES: tuple[str, ...] = ("en", "zh")
_PROVIDER_ALIASES = {"local": "openai", "openai-compatible": "openai", "google": "gemini"}

_ENV_OVERRIDES: Mapping[str, str] = {
    "WINMD_PROVIDER": "provider",
    "WINMD_API_KEY": "api_key",
    "WINMD_MODEL": "model",
    "WINMD_BASE_URL": "base_url",
    "WINMD_LOCAL_MODEL": "local_model",
    "WINMD_LOCAL_API_KEY": "local_api_key",
    "WINMD_LANGUAGE": "language",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "WINMD_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "WINMD_REQUEST_TIMEOUT": "request_timeout",
    "WINMD_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "WINMD_MAX_TURNS": "max_turns",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
# Plaintext field name -> ciphertext field name in the stored payload.
_SECRET_FIELDS: Mapping[str, str] = {
    "api_key": "api_key_ciphertext",
    "local_api_key": "local_api_key_ciphertext",
}
_FERNET_PREFIX = "fernet"


def normalize_provider(value: Any) -> str:
    """Map user-facing provider names (including the legacy ``local``) onto a backend tag."""

    raw = str(value or "").strip().lower()
    raw = _PROVIDER_ALIASES.get(raw, raw)
    return raw if raw in PROVIDER_CHOICES else PROVIDER_CHOICES[0]


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    provider: str = "gemini"
    api_key: str = ""
    model: str = AVAILABLE_MODELS[0][0]
    base_url: str = "http://localhost:11434/v1"
    local_model: str = "llama3"
    local_api_key: str = ""
    language: str = "en"
    temperature: float = 0.2
    request_timeout: float = 90.0
    max_turns: int = 10
    mcp_servers: list[dict[str, Any]] = field(default_factory=list)
    debug_logging: bool = False
    window_geometry: str | None = None


class SecretVault:
    """Encrypts API keys with a symmetric Fernet key stored beside the settings file."""

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{_FERNET_PREFIX}:{token}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if prefix != _FERNET_PREFIX or not payload:
            raise ValueError(f"Unsupported secret token prefix: {prefix!r}")
        try:
            return self._get_fernet().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI then environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            secrets: Dict[str, str] = {}
            for plain_name, cipher_name in _SECRET_FIELDS.items():
                value, migrated = self._decrypt_secret(
                    payload.pop(cipher_name, None), payload.pop(plain_name, None), plain_name
                )
                needs_migration = needs_migration or migrated
                if value:
                    secrets[plain_name] = value
            data = _filter_fields(payload)
            servers = data.get("mcp_servers")
            if servers is not None and not isinstance(servers, list):
                LOGGER.warning("Ignoring non-list mcp_servers payload of type %s", type(servers))
                data.pop("mcp_servers")
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if secrets:
                settings = replace(settings, **secrets)
            provider = normalize_provider(settings.provider)
            if provider != settings.provider:
                settings = replace(settings, provider=provider)
                needs_migration = True

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - read-only settings dir
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        settings = self._apply_env_overrides(settings)
        return replace(settings, provider=normalize_provider(settings.provider))

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        body = json.dumps(self._serialize(settings), indent=2, sort_keys=True)
        write_text(self._path, body)
        LOGGER.debug("Settings saved to %s (provider=%s)", self._path, settings.provider)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        for plain_name, cipher_name in _SECRET_FIELDS.items():
            secret = data.pop(plain_name, "") or ""
            if secret:
                data[cipher_name] = self._vault.encrypt(secret)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered = {
            key: value for key, value in overrides.items() if key in allowed and value is not None
        }
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _decrypt_secret(
        self, ciphertext: Any, legacy_plaintext: Any, field_name: str
    ) -> tuple[str, bool]:
        if isinstance(ciphertext, str) and ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt %s: %s", field_name, exc)
                return "", False
        if isinstance(legacy_plaintext, str) and legacy_plaintext:
            LOGGER.info("Detected plaintext %s; migrating to encrypted storage.", field_name)
            return legacy_plaintext, True
        return "", False


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - set(_SECRET_FIELDS)
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
