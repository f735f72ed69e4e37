"""Compiler adapter: pruned TypeScript in, JavaScript + source map + diagnostics out.

The adapter is the only place that knows about the TypeScript compiler.  A
CompileCache calls it on a miss with the ordered list of pruned files for one
compile unit.  Diagnostics never raise; they are returned with the result so
the caller can report every one of them.
"""

import json
import os
import re
import shlex
import subprocess
import sys
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from archsplit.architecture import DEFAULT_SERVER_ARCH, language_tier
from archsplit.stringzilla_utils import remove_first_line_containing_sz
import archsplit.timing

SOURCE_MAP_REFERENCE = "//# sourceMappingURL="
OUTPUT_NAME = "out.js"


@dataclass(frozen=True)
class Diagnostic:
    """One compiler message.  line and column are 1-based, 0 when the
    message is not tied to a file."""

    message: str
    source_path: str
    line: int
    column: int
    severity: str = "error"
    code: Optional[int] = None

    def __str__(self):
        if not self.source_path:
            return self.message
        return f"{self.source_path}:{self.line}:{self.column}: {self.message}"


@dataclass
class CompileResult:
    emitted_source: str = ""
    source_map: str = ""
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def emitted(self) -> bool:
        return bool(self.emitted_source)


def add_arguments(cap):
    """Add the command line arguments that the compiler adapter requires"""
    cap.add(
        "--tsc",
        default="tsc",
        help="TypeScript compiler executable (may include leading arguments, e.g. 'npx tsc')",
    )


# path(line,col): error TS2304: message
_LOCATED_DIAGNOSTIC = re.compile(
    r"^(?P<path>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+"
    r"(?P<severity>error|warning|message|suggestion)\s+TS(?P<code>\d+):\s*(?P<message>.*)$"
)
# error TS5023: message
_GLOBAL_DIAGNOSTIC = re.compile(
    r"^(?P<severity>error|warning|message|suggestion)\s+TS(?P<code>\d+):\s*(?P<message>.*)$"
)


def _format_message(severity, code, message):
    return f"{severity.capitalize()} TS{code}: {message}"


def parse_tsc_diagnostics(output: str) -> List[Diagnostic]:
    """Parse the non-pretty diagnostic output of tsc.

    Indented lines continue the message above them.  Lines that are neither
    a diagnostic nor a continuation are ignored.
    """
    diagnostics = []
    pending = None
    continuation = []

    def flush():
        if pending is None:
            return
        severity, code, message, path, line, column = pending
        text = "\n".join([message] + continuation)
        diagnostics.append(
            Diagnostic(
                message=_format_message(severity, code, text),
                source_path=path,
                line=line,
                column=column,
                severity=severity,
                code=code,
            )
        )

    for raw_line in output.splitlines():
        if pending is not None and raw_line[:1] in (" ", "\t") and raw_line.strip():
            continuation.append(raw_line.strip())
            continue

        match = _LOCATED_DIAGNOSTIC.match(raw_line)
        if match:
            flush()
            continuation = []
            pending = (
                match.group("severity"),
                int(match.group("code")),
                match.group("message"),
                match.group("path"),
                int(match.group("line")),
                int(match.group("column")),
            )
            continue

        match = _GLOBAL_DIAGNOSTIC.match(raw_line.strip())
        if match:
            flush()
            continuation = []
            pending = (
                match.group("severity"),
                int(match.group("code")),
                match.group("message"),
                "",
                0,
                0,
            )

    flush()
    return diagnostics


def finalize_emit(source: str, source_map: str, path_for_source_map: str, cwd: Optional[str] = None):
    """Apply the post-emit fixups to a successful compile.

    - the source map is served out of band, so the reference comment is
      removed from the emitted code
    - the map's "file" becomes path_for_source_map
    - every source the map refers to is embedded in "sourcesContent"; the
      "sources" entries are read relative to cwd (default: os.getcwd())

    Returns the new (source, source_map) pair.
    """
    if cwd is None:
        cwd = os.getcwd()

    source = remove_first_line_containing_sz(source, SOURCE_MAP_REFERENCE)

    source_map_object = json.loads(source_map)
    source_map_object["file"] = path_for_source_map
    sources_content = []
    for source_path in source_map_object.get("sources", []):
        with open(os.path.join(cwd, source_path), encoding="utf-8") as source_file:
            sources_content.append(source_file.read())
    source_map_object["sourcesContent"] = sources_content

    return source, json.dumps(source_map_object)


class CompilerAdapter(ABC):
    """Turns an ordered list of source files into a CompileResult."""

    @abstractmethod
    def compile(
        self, full_paths: Sequence[str], architecture: str, path_for_source_map: str
    ) -> CompileResult:
        """Compile the files.  Diagnostics are returned, not raised."""


class TscCompilerAdapter(CompilerAdapter):
    """Run the TypeScript command line compiler in a subprocess.

    All files of a unit are concatenated into a single output file.  Emit is
    suppressed when there are errors, in which case the result carries
    diagnostics only.
    """

    def __init__(self, tsc: str = "tsc", server_arch: str = DEFAULT_SERVER_ARCH, verbose: int = 0):
        self.tsc = tsc
        self.server_arch = server_arch
        self.verbose = verbose

    @classmethod
    def from_args(cls, args):
        return cls(tsc=args.tsc, server_arch=args.server_arch, verbose=args.verbose)

    def command(self, full_paths, architecture, out_file):
        target = language_tier(architecture, self.server_arch).compiler_target
        cmd = shlex.split(self.tsc) + [
            "--pretty", "false",
            "--target", target,
            "--outFile", out_file,
            "--sourceMap",
            "--alwaysStrict",
            "--removeComments",
            "--noEmitOnError",
        ]
        cmd.extend(full_paths)
        return cmd

    def compile(self, full_paths, architecture, path_for_source_map):
        result = CompileResult()
        if not full_paths:
            return result

        with tempfile.TemporaryDirectory(prefix="archsplit-tsc-") as outdir:
            out_file = os.path.join(outdir, OUTPUT_NAME)
            cmd = self.command(full_paths, architecture, out_file)
            if self.verbose >= 3:
                print(" ".join(cmd))

            with archsplit.timing.time_operation(f"tsc_{architecture}"):
                try:
                    completed = subprocess.run(
                        cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, universal_newlines=True
                    )
                except OSError as err:
                    print(f"Failed to run the TypeScript compiler '{self.tsc}'. Error={err}", file=sys.stderr)
                    raise

            if self.verbose >= 5:
                print(completed.stdout)

            result.diagnostics = parse_tsc_diagnostics(completed.stdout)
            if completed.returncode != 0 and not result.diagnostics:
                # A failure that produced no diagnostics is a broken toolchain
                raise subprocess.CalledProcessError(completed.returncode, cmd, output=completed.stdout)

            map_file = out_file + ".map"
            if not os.path.isfile(out_file) or not os.path.isfile(map_file):
                return result

            with open(out_file, encoding="utf-8") as f:
                emitted_source = f.read()
            with open(map_file, encoding="utf-8") as f:
                source_map = f.read()

        source_map = self._sources_relative_to_cwd(source_map, outdir)
        result.emitted_source, result.source_map = finalize_emit(
            emitted_source, source_map, path_for_source_map
        )
        return result

    @staticmethod
    def _sources_relative_to_cwd(source_map, outdir):
        """tsc writes map sources relative to the map file; rebase them on the cwd."""
        source_map_object = json.loads(source_map)
        cwd = os.getcwd()
        source_map_object["sources"] = [
            os.path.relpath(os.path.normpath(os.path.join(outdir, source_path)), cwd)
            for source_path in source_map_object.get("sources", [])
        ]
        return json.dumps(source_map_object)
