"""Bring-your-own resource resolution.

Every optional resource is either adopted from configuration (``Provided``)
or built by the stack (``Created``). The choice is made once, after the whole
key group has been validated, so a half-filled group never leads to a
half-adopted resource.
"""
from dataclasses import dataclass
from typing import Any, Callable

from selfhosted.config import group, is_set


@dataclass(frozen=True)
class Provided:
    values: dict

    def pick(self, provided: Callable, created: Callable):
        return provided(self.values)


@dataclass(frozen=True)
class Created:
    resource: Any

    def pick(self, provided: Callable, created: Callable):
        return created(self.resource)


def resolve(cs: dict, keys, create: Callable[[], Any], context: str):
    """Adopt the configured group or call create() exactly once."""
    values = group(cs, keys, context)
    if values is not None:
        return Provided(values)
    return Created(create())


def resolve_one(value, create: Callable[[], Any]):
    if is_set(value):
        return Provided({"value": value})
    return Created(create())
