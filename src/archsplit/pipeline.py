"""Source feed: prune files as they are registered, compile per package.

The build host registers TypeScript files one at a time with add_source(),
then calls finalize() once per package and architecture.  Every registered
file is pruned for its architecture and written to a scratch copy; the
compile unit is the list of those scratch copies.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import archsplit.timing
import archsplit.utils
from archsplit.compile_cache import CompileCache, CompileUnit
from archsplit.compiler import Diagnostic
from archsplit.elision import LexicalElisionScanner


def default_scratch_root():
    return os.path.join(os.getcwd(), "packages", "_temp")


def add_arguments(cap):
    """Add the command line arguments that the source feed requires"""
    cap.add(
        "--scratch-dir",
        default=None,
        help="Root for the pruned per-architecture copies. Default: <cwd>/packages/_temp",
    )


def scratch_path(full_path: str, architecture: str, root: Optional[str] = None) -> str:
    """Where the pruned copy of full_path for architecture lives.

    The whole input path is mirrored under <root>/<architecture>, with ':'
    (not allowed in directory names everywhere) replaced by '_'.  Parent
    directories are created.
    """
    if root is None:
        root = default_scratch_root()
    mirrored = archsplit.utils.removemount(full_path).replace(":", "_")
    path = os.path.join(root, architecture, mirrored)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return path


def _read_if_exists(path):
    # Rewriting an identical copy would bump its mtime and defeat the compile cache
    if not os.path.isfile(path):
        return None
    with open(path, encoding="utf-8") as f:
        return f.read()


@dataclass
class CompiledOutput:
    """What the build host receives for a finalized unit.

    data is None when the compiler emitted nothing (errors with emit
    suppressed, or an empty unit); diagnostics are always present.
    """

    path: str
    source_path: str
    data: Optional[str]
    source_map: Optional[str]
    diagnostics: List[Diagnostic] = field(default_factory=list)


class BuildSession:
    """Accumulate one compile unit at a time and push it through the cache."""

    def __init__(
        self,
        scanner: LexicalElisionScanner,
        cache: CompileCache,
        scratch_root: Optional[str] = None,
        verbose: int = 0,
    ):
        self.scanner = scanner
        self.cache = cache
        self.scratch_root = scratch_root
        self.verbose = verbose
        self.package_name = None
        self.unit = CompileUnit()

    def add_source(self, full_path, logical_path, architecture, package_name=None, transpile=True):
        """Prune full_path for architecture and add its scratch copy to the unit.

        Returns the scratch path, or None when the file opted out of
        transpilation.  Read and write errors propagate.
        """
        if not transpile:
            if self.verbose >= 4:
                print(f"Skipping {logical_path}: transpile disabled")
            return None

        if package_name != self.package_name:
            if self.verbose >= 4 and self.unit.full_paths:
                print(f"Package changed to {package_name}, discarding {len(self.unit.full_paths)} pending files")
            self.package_name = package_name
            self.unit = CompileUnit()

        with archsplit.timing.time_operation(f"prune_{architecture}"):
            with open(full_path, encoding="utf-8") as f:
                source = f.read()
            pruned = self.scanner.process(source, logical_path, architecture)

        pruned_path = scratch_path(full_path, architecture, self.scratch_root)
        if _read_if_exists(pruned_path) != pruned:
            with open(pruned_path, "w", encoding="utf-8") as f:
                f.write(pruned)
        if self.verbose >= 3:
            print(f"Pruned {full_path} -> {pruned_path}")

        self.unit.add(pruned_path)
        return pruned_path

    def finalize(self, architecture, path_for_source_map, input_path=None):
        """Compile the pending unit (or fetch it from the cache) and reset it."""
        if input_path is None:
            input_path = path_for_source_map
        unit = self.unit
        unit.architecture = architecture
        unit.path_for_source_map = path_for_source_map
        self.unit = CompileUnit()

        result = self.cache.get(architecture, unit)
        return CompiledOutput(
            path=input_path + ".js",
            source_path=input_path,
            data=result.emitted_source or None,
            source_map=result.source_map or None,
            diagnostics=list(result.diagnostics),
        )
