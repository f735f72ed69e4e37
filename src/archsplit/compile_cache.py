"""Per-architecture compile cache.

A compile unit is recompiled only when the files contributing to it change.
The cache key is built from the full path and modification time of every
file in registration order, so editing, adding, removing or reordering a
file all produce a new key.  Each architecture owns exactly one entry; a key
mismatch overwrites it.

Cache state lives for one build process.  It is never written to disk and
never cleared by the pipeline; tests construct their own CompileCache.
Results carrying diagnostics are cached exactly like clean ones.
"""

import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from archsplit.compiler import CompileResult, CompilerAdapter
import archsplit.timing


@dataclass
class CompileUnit:
    """The files one package contributes for one architecture.

    Built up one file at a time by the source feed; architecture and
    path_for_source_map are filled in when the unit is finalized.
    """

    full_paths: List[str] = field(default_factory=list)
    architecture: Optional[str] = None
    path_for_source_map: Optional[str] = None

    def add(self, full_path: str) -> None:
        self.full_paths.append(full_path)


@dataclass
class CacheEntry:
    key: str
    result: CompileResult


def mtime_ms(path: str) -> int:
    """Modification time in whole milliseconds since the epoch."""
    return os.stat(path).st_mtime_ns // 1_000_000


def compute_cache_key(full_paths) -> str:
    """Concatenate "<path>:<mtime ms>:" for each file.

    Raises FileNotFoundError if a file has disappeared since it was
    registered; a stale entry is never used as a fallback.
    """
    return "".join(f"{path}:{mtime_ms(path)}:" for path in full_paths)


class CompileCache:
    """Architecture-partitioned map from cache key to the last CompileResult.

    The check-compile-store sequence is serialized, so concurrent callers
    never compile the same key twice.
    """

    def __init__(self, adapter: CompilerAdapter, verbose: int = 0):
        self.adapter = adapter
        self.verbose = verbose
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stats = {'hits': 0, 'misses': 0}

    def __contains__(self, architecture):
        return architecture in self._entries

    def entry(self, architecture: str) -> Optional[CacheEntry]:
        return self._entries.get(architecture)

    def get(self, architecture: str, compile_unit: CompileUnit) -> CompileResult:
        """Return the result for compile_unit, compiling only on a key change."""
        with self._lock:
            key = compute_cache_key(compile_unit.full_paths)
            entry = self._entries.get(architecture)

            if entry is not None and entry.key == key:
                self._stats['hits'] += 1
                if self.verbose >= 4:
                    print(f"Compile cache hit: {architecture} ({len(compile_unit.full_paths)} files)")
                return entry.result

            self._stats['misses'] += 1
            if self.verbose >= 4:
                reason = "no entry" if entry is None else "key changed"
                print(f"Compile cache miss: {architecture} ({reason})")

            with archsplit.timing.time_operation(f"compile_{architecture}"):
                result = self.adapter.compile(
                    list(compile_unit.full_paths),
                    architecture,
                    compile_unit.path_for_source_map,
                )
            self._entries[architecture] = CacheEntry(key=key, result=result)
            return result

    def get_stats(self) -> dict:
        total = self._stats['hits'] + self._stats['misses']
        return {
            'entries': len(self._entries),
            'hits': self._stats['hits'],
            'misses': self._stats['misses'],
            'total_calls': total,
            'hit_rate': (self._stats['hits'] / total) * 100 if total else 0.0,
        }

    def print_stats(self, file=None):
        stats = self.get_stats()
        print("\n=== Compile Cache Statistics ===", file=file)
        print(f"Architectures cached: {stats['entries']}", file=file)
        print(f"Cache hits: {stats['hits']}", file=file)
        print(f"Cache misses: {stats['misses']}", file=file)
        print(f"Cache hit rate: {stats['hit_rate']:.1f}%", file=file)


_default_cache: Optional[CompileCache] = None


def get_default_cache(adapter: CompilerAdapter, verbose: int = 0) -> CompileCache:
    """The process-wide cache, created with adapter on first use."""
    global _default_cache
    if _default_cache is None:
        _default_cache = CompileCache(adapter, verbose=verbose)
    return _default_cache
