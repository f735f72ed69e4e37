"""Classification of build architectures.

An architecture id is a dotted string such as ``os.linux.x86_64`` or
``web.browser``.  Exactly one id (``os`` by default) is server class; every
other id, sub-architectures of the server id and ids we have never seen
included, is client class.  The language tier is looser: the server id and
its dotted sub-architectures all target the modern runtime.
"""

import enum
import functools

DEFAULT_SERVER_ARCH = "os"


class LanguageTier(enum.Enum):
    """Language level the compiler is asked to emit."""

    ELEVATED = "ES2017"
    STANDARD = "ES5"

    @property
    def compiler_target(self) -> str:
        return self.value


@functools.lru_cache(maxsize=None)
def arch_matches(arch: str, pattern: str) -> bool:
    """True if arch is pattern or a dotted refinement of it.

    >>> arch_matches("os.linux.x86_64", "os")
    True
    >>> arch_matches("osx", "os")
    False
    """
    if not arch.startswith(pattern):
        return False
    return len(arch) == len(pattern) or arch[len(pattern)] == "."


def is_server_class(arch: str, server_arch: str = DEFAULT_SERVER_ARCH) -> bool:
    """Only the server id itself; ``os.linux.x86_64`` is client class."""
    return arch == server_arch


def language_tier(arch: str, server_arch: str = DEFAULT_SERVER_ARCH) -> LanguageTier:
    """The server family targets a modern runtime, clients get the conservative tier."""
    if arch_matches(arch, server_arch):
        return LanguageTier.ELEVATED
    return LanguageTier.STANDARD


def clear_cache() -> None:
    arch_matches.cache_clear()
