"""
Configuration for the task API server.

Provides environment-aware configuration classes following Flask's
recommended pattern: a shared ``Config`` base class holds defaults, and
environment-specific subclasses (``DevelopmentConfig``, ``TestingConfig``,
``ProductionConfig``) override only what differs.  ``get_config`` resolves
the class at runtime from an explicit name or the ``FLASK_ENV`` variable.

Collaborator endpoints are process-level settings too: when
``AUTH_SERVICE_URL`` is set the server verifies credentials against that
service instead of its local user store.
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env(name: str) -> str:
    return os.environ.get(name, "").strip()


def _load_key(raw_env_var: str, path_env_var: str) -> str:
    """Return the PEM text from *raw_env_var*, else read the file named by *path_env_var*."""
    raw_key = _env(raw_env_var)
    if raw_key:
        return raw_key

    key_path = _env(path_env_var)
    if key_path:
        try:
            return Path(key_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RuntimeError(
                f"Unable to read JWT key file at '{key_path}' from {path_env_var}."
            ) from exc

    raise RuntimeError(
        f"Missing JWT key configuration: set {raw_env_var} or {path_env_var}."
    )


def _has_key_source(raw_env_var: str, path_env_var: str) -> bool:
    """True when either variable of the pair is set."""
    return bool(_env(raw_env_var) or _env(path_env_var))


def load_auth_keys(*, testing: bool) -> tuple[str, str]:
    """
    Return ``(private_pem, public_pem)`` for the local auth collaborator.

    The test suite injects its own pair through the ``TEST_JWT_*`` variables;
    all other environments use ``JWT_*``.
    """
    if testing and (
        _has_key_source("TEST_JWT_PRIVATE_KEY", "TEST_JWT_PRIVATE_KEY_PATH")
        or _has_key_source("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH")
    ):
        return (
            _load_key("TEST_JWT_PRIVATE_KEY", "TEST_JWT_PRIVATE_KEY_PATH"),
            _load_key("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH"),
        )

    return (
        _load_key("JWT_PRIVATE_KEY", "JWT_PRIVATE_KEY_PATH"),
        _load_key("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH"),
    )


class Config:
    """
    Base configuration shared by all environments.

    Every setting can be controlled via an environment variable so that
    container orchestrators can inject secrets and endpoints at deploy time.
    """

    SECRET_KEY: str = os.environ.get(
        "SECRET_KEY", "api-server-dev-secret-change-in-production"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'api.db'}",
    )

    # How many hours a newly issued token remains valid before expiring
    JWT_EXPIRY_HOURS: int = int(os.environ.get("JWT_EXPIRY_HOURS", "24"))
    # Seconds of tolerance for clock differences between issuer and verifier
    JWT_CLOCK_SKEW_SECONDS: int = int(os.environ.get("JWT_CLOCK_SKEW_SECONDS", "30"))

    # Empty means credentials are issued and verified in-process.
    AUTH_SERVICE_URL: str = os.environ.get("AUTH_SERVICE_URL", "")
    # Seconds to wait for the remote auth service before giving up with 502.
    AUTH_SERVICE_TIMEOUT: int = int(os.environ.get("AUTH_SERVICE_TIMEOUT", "10"))

    # Largest JSON body the parser accepts (bytes).
    MAX_JSON_BODY_BYTES: int = int(os.environ.get("MAX_JSON_BODY_BYTES", str(100 * 1024)))

    HOST: str = os.environ.get("HOST", "0.0.0.0")
    PORT: int = int(os.environ.get("PORT", "5000"))
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    """Local development: debug mode on, testing off."""

    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """
    Configuration for the automated test suite.

    Uses an in-memory SQLite database by default so test runs never touch
    development data, and never talks to a real auth service.
    """

    DEBUG: bool = True
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    JWT_EXPIRY_HOURS: int = int(os.environ.get("TEST_JWT_EXPIRY_HOURS", "1"))
    AUTH_SERVICE_URL: str = os.environ.get("TEST_AUTH_SERVICE_URL", "")
    AUTH_SERVICE_TIMEOUT: int = int(os.environ.get("TEST_AUTH_SERVICE_TIMEOUT", "1"))
    MAX_JSON_BODY_BYTES: int = int(os.environ.get("TEST_MAX_JSON_BODY_BYTES", "1024"))


class ProductionConfig(Config):
    """
    Configuration for production deployments.

    All secrets **must** be supplied through environment variables -- the
    defaults in ``Config`` are intentionally insecure.
    """

    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Resolve a configuration class by environment name.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When ``None``, the ``FLASK_ENV``
            environment variable is consulted, falling back to
            ``"development"`` if unset.

    Returns:
        The configuration class (not an instance).  Falls back to
        ``DevelopmentConfig`` for unrecognised names.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
