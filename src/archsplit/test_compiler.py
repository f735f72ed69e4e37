import json
import os
import shlex
import sys
from textwrap import dedent

import pytest

import archsplit.testhelper as uth
from archsplit.compiler import (
    Diagnostic,
    TscCompilerAdapter,
    finalize_emit,
    parse_tsc_diagnostics,
)

# Stands in for tsc: writes one output file plus map, or reports an error
# for inputs that mention BOOM.
FAKE_TSC = dedent('''\
    import json, os, sys

    args = sys.argv[1:]
    out_file = args[args.index("--outFile") + 1]
    inputs = [a for a in args if a.endswith(".ts")]
    failed = False
    for path in inputs:
        with open(path, encoding="utf-8") as f:
            text = f.read()
        if "BOOM" in text:
            print(path + "(1,1): error TS2304: Cannot find name 'BOOM'.")
            failed = True
    if failed:
        sys.exit(2)

    outdir = os.path.dirname(out_file)
    with open(out_file, "w", encoding="utf-8") as f:
        f.write("var target = " + json.dumps(args[args.index("--target") + 1]) + ";\\n")
        f.write("//# sourceMappingURL=out.js.map\\n")
    with open(out_file + ".map", "w", encoding="utf-8") as f:
        json.dump({
            "version": 3,
            "file": "out.js",
            "sources": [os.path.relpath(p, outdir) for p in inputs],
            "mappings": "",
        }, f)
''')


class TestParseTscDiagnostics:
    def test_located_diagnostic(self):
        output = "src/a.ts(3,5): error TS2304: Cannot find name 'foo'.\n"
        assert parse_tsc_diagnostics(output) == [
            Diagnostic(
                message="Error TS2304: Cannot find name 'foo'.",
                source_path="src/a.ts",
                line=3,
                column=5,
                severity="error",
                code=2304,
            )
        ]

    def test_every_diagnostic_is_reported(self):
        output = dedent("""\
            a.ts(1,1): error TS2322: Type 'string' is not assignable to type 'number'.
              The expected type comes from property 'n'.
            C:\\work\\b.ts(10,20): warning TS6133: 'x' is declared but never used.
            error TS5023: Unknown compiler option 'nope'.
            Found 3 errors.
        """)
        diagnostics = parse_tsc_diagnostics(output)

        assert len(diagnostics) == 3
        assert diagnostics[0].message == (
            "Error TS2322: Type 'string' is not assignable to type 'number'.\n"
            "The expected type comes from property 'n'."
        )
        assert diagnostics[1].source_path == "C:\\work\\b.ts"
        assert (diagnostics[1].line, diagnostics[1].column) == (10, 20)
        assert diagnostics[1].severity == "warning"
        assert diagnostics[1].message.startswith("Warning TS6133: ")
        assert diagnostics[2].source_path == ""
        assert (diagnostics[2].line, diagnostics[2].column) == (0, 0)
        assert diagnostics[2].code == 5023

    def test_no_diagnostics(self):
        assert parse_tsc_diagnostics("") == []
        assert parse_tsc_diagnostics("Version 5.4.5\n") == []

    def test_diagnostic_str(self):
        assert str(uth.sample_diagnostic()) == "a.ts:3:5: Error TS2304: Cannot find name 'foo'."
        assert str(Diagnostic("Error TS5023: x", "", 0, 0)) == "Error TS5023: x"


class TestFinalizeEmit:
    def test_post_emit_fixups(self, tmp_path):
        (tmp_path / "lib").mkdir()
        (tmp_path / "lib" / "a.ts").write_text("let a = 1;\n", encoding="utf-8")
        source = "var a = 1;\n//# sourceMappingURL=out.js.map\n"
        source_map = json.dumps(
            {"version": 3, "file": "out.js", "sources": ["lib/a.ts"], "mappings": "AAAA"}
        )

        new_source, new_map = finalize_emit(source, source_map, "app/main.js", cwd=str(tmp_path))

        assert new_source == "var a = 1;\n\n"
        source_map_object = json.loads(new_map)
        assert source_map_object["file"] == "app/main.js"
        assert source_map_object["sourcesContent"] == ["let a = 1;\n"]
        assert source_map_object["mappings"] == "AAAA"

    def test_only_first_reference_removed_and_crlf_kept(self, tmp_path):
        source = "a();\r\n//# sourceMappingURL=one.map\r\nb();\n//# sourceMappingURL=two.map"
        new_source, _ = finalize_emit(source, '{"sources": []}', "x.js", cwd=str(tmp_path))
        assert new_source == "a();\r\n\r\nb();\n//# sourceMappingURL=two.map"

    def test_missing_source_is_fatal(self, tmp_path):
        source_map = json.dumps({"sources": ["gone.ts"]})
        with pytest.raises(FileNotFoundError):
            finalize_emit("x", source_map, "x.js", cwd=str(tmp_path))


class TestTscCompilerAdapter:
    def setup_method(self):
        uth.reset()

    def teardown_method(self):
        uth.reset()

    def fake_adapter(self, directory):
        script = os.path.join(directory, "fake_tsc.py")
        with open(script, "w", encoding="utf-8") as f:
            f.write(FAKE_TSC)
        return TscCompilerAdapter(tsc=shlex.join([sys.executable, script]))

    def test_command_uses_language_tier(self):
        adapter = TscCompilerAdapter(tsc="npx tsc")
        server_cmd = adapter.command(["/x/a.ts", "/x/b.ts"], "os.linux.x86_64", "/tmp/out.js")
        client_cmd = adapter.command(["/x/a.ts"], "web.browser", "/tmp/out.js")

        assert server_cmd[:2] == ["npx", "tsc"]
        assert server_cmd[server_cmd.index("--target") + 1] == "ES2017"
        assert client_cmd[client_cmd.index("--target") + 1] == "ES5"
        assert server_cmd[server_cmd.index("--outFile") + 1] == "/tmp/out.js"
        for flag in ("--sourceMap", "--removeComments", "--noEmitOnError", "--alwaysStrict"):
            assert flag in server_cmd
        assert server_cmd[-2:] == ["/x/a.ts", "/x/b.ts"]

    def test_empty_unit_is_not_compiled(self):
        adapter = TscCompilerAdapter(tsc="archsplit-no-such-compiler")
        result = adapter.compile([], "os", "app.js")
        assert not result.emitted
        assert result.diagnostics == []

    def test_compile_with_fake_tsc(self):
        with uth.TempDirContext() as tmpdir:
            adapter = self.fake_adapter(tmpdir)
            a = uth.write_file("lib/a.ts", "let a = 1;\n")

            result = adapter.compile([a], "os", "packages/app.js")

            assert result.diagnostics == []
            assert result.emitted_source == 'var target = "ES2017";\n\n'
            source_map_object = json.loads(result.source_map)
            assert source_map_object["file"] == "packages/app.js"
            assert source_map_object["sources"] == [os.path.join("lib", "a.ts")]
            assert source_map_object["sourcesContent"] == ["let a = 1;\n"]

    def test_compile_errors_suppress_emit(self):
        with uth.TempDirContext() as tmpdir:
            adapter = self.fake_adapter(tmpdir)
            good = uth.write_file("good.ts", "let a = 1;\n")
            bad = uth.write_file("bad.ts", "BOOM;\n")

            result = adapter.compile([good, bad], "web.browser", "app.js")

            assert not result.emitted
            assert result.source_map == ""
            assert len(result.diagnostics) == 1
            assert result.diagnostics[0].source_path == bad
            assert result.diagnostics[0].code == 2304

    def test_missing_compiler_is_fatal(self, capsys):
        with uth.TempDirContext():
            a = uth.write_file("a.ts", "let a = 1;\n")
            adapter = TscCompilerAdapter(tsc="archsplit-no-such-compiler")
            with pytest.raises(OSError):
                adapter.compile([a], "os", "app.js")
        assert "Failed to run the TypeScript compiler" in capsys.readouterr().err
