"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.httpcachekit/`` on macOS and Windows. See :func:`get_config_dir`
  and :func:`get_cache_dir`.
* **Global config** -- A single :class:`~httpcachekit.models.GlobalConfig`
  JSON file holding transport and cache settings.
* **Precedence resolution** -- :func:`resolve_config` merges explicit
  arguments, environment variables, and the config file into the
  effective configuration.

File writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from httpcachekit.exceptions import ConfigError
from httpcachekit.models import CacheBackend, CacheConfig, GlobalConfig

_APP_NAME = "httpcachekit"
_CONFIG_FILENAME = "config.json"

ENV_BACKEND = "HTTPCACHEKIT_BACKEND"
ENV_CACHE_PATH = "HTTPCACHEKIT_CACHE_PATH"
ENV_MAX_AGE = "HTTPCACHEKIT_MAX_AGE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/httpcachekit/`` (default
    ``~/.config/httpcachekit/``). On macOS/Windows: ``~/.httpcachekit/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the default response store. Its contents can be deleted at any
    time.

    On Linux/BSD: ``$XDG_CACHE_HOME/httpcachekit/`` (default
    ``~/.cache/httpcachekit/``). On macOS/Windows: ``~/.httpcachekit/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_store_path(backend: CacheBackend) -> Path:
    """Default location of the response store for *backend*.

    ``responses.db`` for SQLite, the ``responses/`` directory for diskcache.
    """
    if backend == CacheBackend.DISKCACHE:
        return get_cache_dir() / "responses"
    return get_cache_dir() / "responses.db"


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created next to *path* so ``os.replace`` is an
    atomic rename on POSIX systems. On failure the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~httpcachekit.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_backend: Optional[str] = None,
    cli_max_age: Optional[int] = None,
) -> GlobalConfig:
    """Resolve config with the full precedence chain.

    Precedence (high to low):
        1. Explicit arguments (``cli_backend``, ``cli_max_age``)
        2. Environment variables (``HTTPCACHEKIT_BACKEND``,
           ``HTTPCACHEKIT_CACHE_PATH``, ``HTTPCACHEKIT_MAX_AGE``)
        3. User config (``~/.config/httpcachekit/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the config file is invalid or an override does not
            validate (unknown backend, non-positive or non-integer max age).
    """
    config = load_global_config()
    cache = config.cache.model_dump()

    env_backend = os.environ.get(ENV_BACKEND)
    if env_backend:
        cache["backend"] = env_backend
    env_path = os.environ.get(ENV_CACHE_PATH)
    if env_path:
        cache["path"] = env_path
    env_max_age = os.environ.get(ENV_MAX_AGE)
    if env_max_age:
        try:
            cache["max_age_seconds"] = int(env_max_age)
        except ValueError as exc:
            raise ConfigError(
                f"{ENV_MAX_AGE} must be an integer number of seconds, got {env_max_age!r}"
            ) from exc

    if cli_backend is not None:
        cache["backend"] = cli_backend
    if cli_max_age is not None:
        cache["max_age_seconds"] = cli_max_age

    try:
        return config.model_copy(update={"cache": CacheConfig.model_validate(cache)})
    except ValidationError as exc:
        raise ConfigError(f"Invalid cache configuration: {exc}") from exc
