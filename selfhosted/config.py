"""Configuration loading and validation shared by every stack family.

The CDK app and the installer both read a single YAML document. Stacks pull
their own section out of it and validate required keys and bring-your-own
groups before declaring anything.
"""
import os

import yaml


class ConfigError(ValueError):
    """Raised when the configuration cannot be used as given."""


class MissingConfigError(ConfigError):

    def __init__(self, context: str, missing: list):
        self.context = context
        self.missing = list(missing)
        super().__init__(f"Missing required arguments for [{context}]: {', '.join(self.missing)}")


class IncompleteGroupError(ConfigError):
    """Some, but not all, keys of an all-or-nothing group were supplied."""

    def __init__(self, context: str, supplied: list, missing: list):
        self.context = context
        self.supplied = list(supplied)
        self.missing = list(missing)
        super().__init__(
            f"[{context}] was partially configured: got {', '.join(self.supplied)} "
            f"but missing {', '.join(self.missing)}. Provide all of them or none."
        )


def load_config(path: str) -> dict:
    """Load a YAML configuration file into a dict"""
    if not os.path.isfile(path):
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path, 'r') as file:
        config = yaml.safe_load(file)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping at the top level")
    return config


def section(config: dict, name: str) -> dict:
    return config.get(name) or {}


def is_set(value) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def require(cs: dict, keys, context: str) -> dict:
    """Return the values for keys, raising if any of them is absent or empty."""
    missing = [key for key in keys if not is_set(cs.get(key))]
    if missing:
        raise MissingConfigError(context, missing)
    return {key: cs[key] for key in keys}


def group(cs: dict, keys, context: str):
    """All-or-nothing lookup: a dict when every key is set, None when none is."""
    supplied = [key for key in keys if is_set(cs.get(key))]
    if not supplied:
        return None
    if len(supplied) != len(keys):
        missing = [key for key in keys if key not in supplied]
        raise IncompleteGroupError(context, supplied, missing)
    return {key: cs[key] for key in keys}


def flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "yes", "1")
