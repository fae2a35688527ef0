"""Foreign-key style lookup lists and their cache."""

from cmstools.lookups.cache import (
    LookupCache,
    LookupKey,
    LookupOption,
    MemoryLookupCache,
    NullLookupCache,
)
from cmstools.lookups.resolver import LookupResolver

__all__ = [
    "LookupCache",
    "LookupKey",
    "LookupOption",
    "MemoryLookupCache",
    "NullLookupCache",
    "LookupResolver",
]
