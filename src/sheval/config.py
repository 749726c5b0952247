"""Configuration registry with TOML-backed persistence.

Settings dataclasses register themselves with ``@configurable``; ``load()``
merges code defaults → global TOML → local TOML into an instance.
Command-line flags are applied on top by the caller.

Config files:
    ~/.config/sheval/config.toml     global (user-wide)
    .sheval/config.toml              local  (project root, or cwd)

Every value is checked against the field's annotated type as it is read,
and the dataclass's own ``__post_init__`` checks run on the merged
result, so a bad file surfaces as :class:`sheval.errors.ConfigError`
naming the file instead of failing deep inside a render.
"""

from __future__ import annotations

import dataclasses
import pathlib
import tomllib
from typing import Any, TypeVar

import sheval.errors

T = TypeVar("T")

_REGISTRY: dict[str, type] = {}

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


# ---------------------------------------------------------------------------
# Decorator
# ---------------------------------------------------------------------------

def configurable(section: str):
    """Class decorator: register a dataclass as the ``[section]`` table."""

    def decorator(cls: type[T]) -> type[T]:
        _REGISTRY[section] = cls
        return cls

    return decorator


def _section_class(section: str) -> type:
    cls = _REGISTRY.get(section)
    if cls is None:
        raise KeyError(f"Unknown config section: {section}")
    return cls


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def _global_path() -> pathlib.Path:
    return pathlib.Path.home() / ".config" / "sheval" / "config.toml"


def _local_path(root: pathlib.Path) -> pathlib.Path:
    return root / ".sheval" / "config.toml"


def _scope_path(scope: str, root: pathlib.Path | None) -> pathlib.Path:
    return _global_path() if scope == "global" else _local_path(_find_root(root))


def find_repo_root(cwd: pathlib.Path) -> pathlib.Path | None:
    """Walk up from *cwd* looking for a ``.git`` directory."""
    current = cwd.resolve()
    while True:
        if (current / ".git").is_dir():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _find_root(root: pathlib.Path | None = None) -> pathlib.Path:
    if root is not None:
        return root
    found = find_repo_root(pathlib.Path.cwd())
    return found if found is not None else pathlib.Path.cwd()


# ---------------------------------------------------------------------------
# TOML I/O
# ---------------------------------------------------------------------------

def _load_toml(path: pathlib.Path) -> dict[str, Any]:
    """Parse *path*; a missing file is empty, a malformed one is an error."""
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise sheval.errors.ConfigError(f"{path}: {exc}") from exc


def _write_toml(path: pathlib.Path, data: dict[str, Any]) -> None:
    import tomli_w

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(tomli_w.dumps(data).encode())


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

def _field_type(cls: type, field_name: str) -> type:
    for f in dataclasses.fields(cls):
        if f.name == field_name:
            t = f.type
            # string annotations under `from __future__ import annotations`
            if isinstance(t, str):
                mapping = {"int": int, "float": float, "bool": bool, "str": str}
                return mapping.get(t, str)
            return t
    raise KeyError(field_name)


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a CLI string to *target_type*; raise ValueError if it cannot be."""
    if target_type is bool:
        lowered = value.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got {value!r}")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _check(target_type: type, value: Any) -> Any:
    """Return *value* as *target_type*, or raise ValueError.

    TOML already types its values, so only the int → float widening is
    applied. ``bool`` is an ``int`` subclass and is never accepted for one.
    """
    if target_type is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, bool) and target_type is not bool:
        raise ValueError(f"expected {target_type.__name__}, got a boolean")
    if not isinstance(value, target_type):
        raise ValueError(f"expected {target_type.__name__}, got {value!r}")
    return value


def _section_data(
    path: pathlib.Path, section: str, cls: type
) -> dict[str, Any]:
    """Read the ``[section]`` table of *path*, type-checked against *cls*.

    Keys the dataclass does not declare are ignored.
    """
    table = _load_toml(path).get(section, {})
    if not isinstance(table, dict):
        raise sheval.errors.ConfigError(f"{path}: [{section}] must be a table")
    fields = {f.name for f in dataclasses.fields(cls)}
    checked = {}
    for key, value in table.items():
        if key not in fields:
            continue
        try:
            checked[key] = _check(_field_type(cls, key), value)
        except ValueError as exc:
            raise sheval.errors.ConfigError(f"{path}: {section}.{key}: {exc}") from exc
    return checked


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------

def list_sections() -> dict[str, type]:
    """Return a copy of the registry."""
    return dict(_REGISTRY)


def load(section: str, root: pathlib.Path | None = None) -> Any:
    """Load a config section, merging defaults → global → local.

    Raises KeyError for an unregistered section and ConfigError for a
    malformed file or a value the section rejects.
    """
    cls = _section_class(section)
    root = _find_root(root)
    merged = {
        **_section_data(_global_path(), section, cls),
        **_section_data(_local_path(root), section, cls),
    }
    return cls(**merged)


def get_effective(
    section: str,
    key: str,
    root: pathlib.Path | None = None,
) -> Any:
    """Get the effective value for a single config key."""
    instance = load(section, root)
    return getattr(instance, key)


def set_value(
    section: str,
    key: str,
    value: Any,
    *,
    scope: str = "local",
    root: pathlib.Path | None = None,
) -> None:
    """Write a config value to the global or local TOML file.

    String values are coerced to the field's type. The value is checked by
    building the section with it before anything is written, so the file
    never holds a value ``load()`` would reject.
    """
    cls = _section_class(section)
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    if key not in valid_fields:
        raise KeyError(f"Unknown key: {section}.{key}")

    target_type = _field_type(cls, key)
    try:
        if isinstance(value, str):
            value = _coerce(value, target_type)
        value = _check(target_type, value)
    except ValueError as exc:
        raise sheval.errors.ConfigError(f"{section}.{key}: {exc}") from exc
    # Checked on its own so a bad value elsewhere in the files can still be fixed.
    cls(**{key: value})

    path = _scope_path(scope, root)
    data = _load_toml(path)
    data.setdefault(section, {})[key] = value
    _write_toml(path, data)


def reset_value(
    section: str,
    key: str,
    *,
    scope: str = "local",
    root: pathlib.Path | None = None,
) -> None:
    """Remove a config override from the TOML file."""
    path = _scope_path(scope, root)
    data = _load_toml(path)
    sec = data.get(section, {})
    if key in sec:
        del sec[key]
        if not sec:
            del data[section]
        _write_toml(path, data)
