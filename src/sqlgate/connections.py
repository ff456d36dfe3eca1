"""Named connection management: ~/.sqlgate/connections.toml.

Each table in the file is one connection::

    [analytics]
    type = "postgres"
    host = "db.internal"
    user = "reader"
    database = "warehouse"
    password_env = "ANALYTICS_PG_PASSWORD"

``password_env`` names an environment variable holding the password, so the
secret itself never has to be written to disk.
"""

from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path

from sqlgate.adapters._base import ConnectionConfig, DatabaseType
from sqlgate.diagnostics import ConfigError, redact

_CONNECTIONS_FILE = Path.home() / ".sqlgate" / "connections.toml"

PASSWORD_ENV_KEY = "password_env"
_SECRET_KEYS = frozenset({"password", "dsn"})


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _write_file(data: dict[str, dict]) -> None:
    """Serialize connections and write them readable by the owner only."""
    lines: list[str] = []
    for name, entry in data.items():
        lines.append(f"[{_quote(name)}]")
        lines.extend(f"{key} = {_quote(str(value))}" for key, value in entry.items())
        lines.append("")

    _CONNECTIONS_FILE.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    _CONNECTIONS_FILE.write_text("\n".join(lines))
    os.chmod(_CONNECTIONS_FILE, stat.S_IRUSR | stat.S_IWUSR)  # 0600


def _load_file() -> dict[str, dict]:
    if not _CONNECTIONS_FILE.exists():
        return {}
    try:
        return tomllib.loads(_CONNECTIONS_FILE.read_text())
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{_CONNECTIONS_FILE} is not valid TOML: {e}") from e


def list_connections() -> dict[str, dict]:
    """Return all named connections as {name: {type, ...params}}."""
    return _load_file()


def mask_params(params: dict[str, object]) -> dict[str, str]:
    """Params safe to display: secrets hidden, env var names kept."""
    masked: dict[str, str] = {}
    for key, value in params.items():
        if key == "password":
            masked[key] = "****"
        elif key in _SECRET_KEYS:
            masked[key] = redact(str(value))
        else:
            masked[key] = str(value)
    return masked


def resolve_password(name: str, params: dict[str, str]) -> dict[str, str]:
    """Replace ``password_env`` with the password read from the environment.

    Raises ConfigError when the named variable is not set.
    """
    var = params.get(PASSWORD_ENV_KEY)
    if not var:
        return params
    resolved = {k: v for k, v in params.items() if k != PASSWORD_ENV_KEY}
    value = os.environ.get(var)
    if value is None:
        raise ConfigError(
            f"connection '{name}' reads its password from ${var}, which is not set"
        )
    resolved["password"] = value
    return resolved


def get_connection(name: str) -> ConnectionConfig | None:
    """Look up a named connection. Returns None if not found.

    Raises ConfigError for an entry with a missing or unknown ``type``, or an
    unresolvable ``password_env``.
    """
    data = _load_file()
    if name not in data:
        return None

    entry = data[name]
    db_type_str = entry.get("type")
    if db_type_str is None:
        raise ConfigError(f"connection '{name}' has no 'type'")
    try:
        db_type = DatabaseType(db_type_str)
    except ValueError as e:
        valid = ", ".join(t.value for t in DatabaseType)
        raise ConfigError(
            f"connection '{name}' has unknown type '{db_type_str}'. Valid: {valid}"
        ) from e

    params = {k: str(v) for k, v in entry.items() if k != "type"}
    return ConnectionConfig(
        name=name, db_type=db_type, params=resolve_password(name, params)
    )


def save_connection(name: str, db_type: str, params: dict[str, str]) -> Path:
    """Save a named connection to the config file."""
    data = _load_file()
    data[name] = {"type": db_type, **params}
    _write_file(data)
    return _CONNECTIONS_FILE


def remove_connection(name: str) -> bool:
    """Remove a named connection. Returns True if removed, False if not found."""
    data = _load_file()
    if name not in data:
        return False
    del data[name]
    if not data:
        _CONNECTIONS_FILE.unlink(missing_ok=True)
    else:
        _write_file(data)
    return True
