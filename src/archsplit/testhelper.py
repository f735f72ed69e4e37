import os
import shutil
import tempfile

import archsplit.architecture
import archsplit.compile_cache
import archsplit.timing
from archsplit.compiler import CompileResult, CompilerAdapter, Diagnostic


def reset():
    archsplit.architecture.clear_cache()
    archsplit.timing.initialize_timer()
    archsplit.compile_cache._default_cache = None


class TempDirContext:
    """Create a temporary directory, chdir into it, and clean up on exit."""

    def __init__(self):
        self._origdir = None
        self._tmpdir = None

    def __enter__(self):
        self._origdir = os.getcwd()
        self._tmpdir = tempfile.mkdtemp(prefix="archsplit-test-")
        os.chdir(self._tmpdir)
        return self._tmpdir

    def __exit__(self, exc_type, exc_value, traceback):
        os.chdir(self._origdir)
        shutil.rmtree(self._tmpdir, ignore_errors=True)


def write_file(path, text):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return os.path.abspath(path)


def touch(path, mtime_ms):
    """Set both access and modification time, in milliseconds since the epoch."""
    ns = mtime_ms * 1_000_000
    os.utime(path, ns=(ns, ns))


class RecordingCompilerAdapter(CompilerAdapter):
    """Concatenates its inputs instead of compiling, and remembers every call."""

    def __init__(self, diagnostics=None):
        self.calls = []
        self.diagnostics = list(diagnostics or [])

    def compile(self, full_paths, architecture, path_for_source_map):
        self.calls.append((list(full_paths), architecture, path_for_source_map))
        if self.diagnostics:
            return CompileResult(diagnostics=list(self.diagnostics))

        parts = []
        for path in full_paths:
            with open(path, encoding="utf-8") as f:
                parts.append(f.read())
        return CompileResult(
            emitted_source="".join(parts),
            source_map='{"version":3,"file":"%s","sources":[]}' % path_for_source_map,
        )


def sample_diagnostic():
    return Diagnostic(
        message="Error TS2304: Cannot find name 'foo'.",
        source_path="a.ts",
        line=3,
        column=5,
        severity="error",
        code=2304,
    )
