import os

import pytest

import archsplit.testhelper as uth
from archsplit.compile_cache import (
    CompileCache,
    CompileUnit,
    compute_cache_key,
    get_default_cache,
    mtime_ms,
)


class TestCompileCache:
    def setup_method(self):
        uth.reset()
        self._tmpdir = uth.TempDirContext()
        self._tmpdir.__enter__()
        self.a = uth.write_file("a.ts", "let a = 1;\n")
        self.b = uth.write_file("b.ts", "let b = 2;\n")
        uth.touch(self.a, 1_700_000_000_000)
        uth.touch(self.b, 1_700_000_000_000)
        self.adapter = uth.RecordingCompilerAdapter()
        self.cache = CompileCache(self.adapter)

    def teardown_method(self):
        self._tmpdir.__exit__(None, None, None)
        uth.reset()

    def unit(self, *paths):
        return CompileUnit(full_paths=list(paths), path_for_source_map="app.js")

    def test_cache_key_format(self):
        assert mtime_ms(self.a) == 1_700_000_000_000
        assert compute_cache_key([self.a, self.b]) == (
            f"{self.a}:1700000000000:{self.b}:1700000000000:"
        )
        assert compute_cache_key([]) == ""

    def test_cache_key_depends_on_order_and_membership(self):
        assert compute_cache_key([self.a, self.b]) != compute_cache_key([self.b, self.a])
        assert compute_cache_key([self.a]) != compute_cache_key([self.a, self.b])

    def test_unchanged_unit_compiles_once(self):
        result1 = self.cache.get("web.browser", self.unit(self.a, self.b))
        result2 = self.cache.get("web.browser", self.unit(self.a, self.b))

        assert len(self.adapter.calls) == 1
        assert result1 is result2
        assert result1.emitted_source == "let a = 1;\nlet b = 2;\n"
        assert self.adapter.calls[0] == ([self.a, self.b], "web.browser", "app.js")

        stats = self.cache.get_stats()
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['total_calls'] == 2
        assert stats['hit_rate'] == 50.0

    def test_touching_a_file_forces_one_recompile(self):
        self.cache.get("web.browser", self.unit(self.a, self.b))
        uth.touch(self.b, 1_700_000_000_005)

        self.cache.get("web.browser", self.unit(self.a, self.b))
        assert len(self.adapter.calls) == 2

        self.cache.get("web.browser", self.unit(self.a, self.b))
        assert len(self.adapter.calls) == 2

    def test_adding_a_file_forces_recompile(self):
        self.cache.get("web.browser", self.unit(self.a))
        self.cache.get("web.browser", self.unit(self.a, self.b))
        assert len(self.adapter.calls) == 2

    def test_architectures_are_independent(self):
        self.cache.get("os", self.unit(self.a))
        self.cache.get("web.browser", self.unit(self.b))
        assert len(self.adapter.calls) == 2
        assert "os" in self.cache and "web.browser" in self.cache

        uth.touch(self.b, 1_700_000_000_100)
        self.cache.get("web.browser", self.unit(self.b))
        self.cache.get("os", self.unit(self.a))
        assert len(self.adapter.calls) == 3
        assert self.adapter.calls[-1][1] == "web.browser"

    def test_same_unit_for_two_architectures(self):
        self.cache.get("os", self.unit(self.a))
        self.cache.get("web.browser", self.unit(self.a))
        self.cache.get("os", self.unit(self.a))
        self.cache.get("web.browser", self.unit(self.a))
        assert [call[1] for call in self.adapter.calls] == ["os", "web.browser"]
        assert self.cache.get_stats()['entries'] == 2

    def test_results_with_diagnostics_are_cached(self):
        adapter = uth.RecordingCompilerAdapter(diagnostics=[uth.sample_diagnostic()])
        cache = CompileCache(adapter)

        result1 = cache.get("os", self.unit(self.a))
        result2 = cache.get("os", self.unit(self.a))

        assert len(adapter.calls) == 1
        assert result1.diagnostics == [uth.sample_diagnostic()]
        assert result2 is result1
        assert not result1.emitted

    def test_vanished_file_is_fatal(self):
        self.cache.get("os", self.unit(self.a, self.b))
        os.remove(self.b)

        with pytest.raises(FileNotFoundError):
            self.cache.get("os", self.unit(self.a, self.b))
        assert len(self.adapter.calls) == 1
        # The previous entry is left as it was
        assert self.cache.entry("os").key == f"{self.a}:1700000000000:{self.b}:1700000000000:"

    def test_verbose_output(self, capsys):
        cache = CompileCache(self.adapter, verbose=4)
        cache.get("os", self.unit(self.a))
        cache.get("os", self.unit(self.a))
        out = capsys.readouterr().out
        assert "Compile cache miss: os (no entry)" in out
        assert "Compile cache hit: os (1 files)" in out

    def test_print_stats(self, capsys):
        self.cache.get("os", self.unit(self.a))
        self.cache.print_stats()
        out = capsys.readouterr().out
        assert "Architectures cached: 1" in out
        assert "Cache misses: 1" in out


def test_default_cache_is_process_wide():
    uth.reset()
    try:
        first = get_default_cache(uth.RecordingCompilerAdapter())
        second = get_default_cache(uth.RecordingCompilerAdapter())
        assert first is second
    finally:
        uth.reset()
