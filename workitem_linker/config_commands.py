"""Configuration commands for workitem linker CLI."""

from typing import Any

from cyclopts import App

from workitem_linker.config import KNOWN_KEYS, SECRET_KEYS, get_config

config_app = App(name="config", help="Manage configuration")


def _display(key: str, value: Any) -> str:
    if key in SECRET_KEYS and value:
        text = str(value)
        return f"{text[:4]}{'*' * max(len(text) - 4, 4)}"
    return str(value)


def _scope(global_: bool) -> str:
    return "global" if global_ else "local"


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key, e.g. azure.organization or branch.prefix
        value: Configuration value
        global_: If True, set in global config. If False, set in local config.
    """
    if key not in KNOWN_KEYS:
        print(f"Warning: {key} is not a recognized key. Known keys: {', '.join(sorted(KNOWN_KEYS))}")
    get_config(use_global=global_).set(key, value)
    print(f"Set {key} = {_display(key, value)} ({_scope(global_)})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting."""
    get_config(use_global=global_).unset(key)
    print(f"Unset {key} ({_scope(global_)})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the value of a configuration setting, with global fallback unless ``--global`` is given."""
    value = get_config(use_global=global_).get(key)
    if value is None:
        print(f"{key} is not set")
    else:
        print(f"{key} = {_display(key, value)}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List configuration settings, one per line, secrets masked."""
    settings = get_config(use_global=global_).list()

    if not settings:
        print(f"No {_scope(global_)} configuration settings")
        return

    print(f"{'Global' if global_ else 'Configuration'} settings:\n")
    for key, value in settings.items():
        print(f"{key} = {_display(key, value)}")
