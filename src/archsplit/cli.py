import os
import sys

import archsplit.apptools
import archsplit.compiler
import archsplit.elision
import archsplit.pipeline
import archsplit.timing
from archsplit.compile_cache import get_default_cache
from archsplit.compiler import TscCompilerAdapter
from archsplit.elision import LexicalElisionScanner, UnterminatedRegionError
from archsplit.pipeline import BuildSession


def _prune_parser(config_files=None):
    cap = archsplit.apptools.create_parser(
        "Remove the client or server only regions that do not belong to an architecture",
        config_files=config_files,
    )
    archsplit.apptools.add_common_arguments(cap)
    archsplit.elision.add_arguments(cap)
    cap.add("filename", help="Source file to prune")
    cap.add(
        "--logical-path",
        default=None,
        help="Path used for the client/ and server/ bypass. Default: filename relative to the cwd",
    )
    cap.add("-o", "--output", default=None, help="Write here instead of stdout")
    return cap


def _build_parser(config_files=None):
    cap = archsplit.apptools.create_parser(
        "Prune and compile one TypeScript compile unit for an architecture",
        config_files=config_files,
    )
    archsplit.apptools.add_common_arguments(cap)
    archsplit.elision.add_arguments(cap)
    archsplit.compiler.add_arguments(cap)
    archsplit.pipeline.add_arguments(cap)
    cap.add("filenames", nargs="+", help="TypeScript files of the compile unit, in order")
    cap.add("--package", default=None, help="Name of the package the files belong to")
    cap.add(
        "--output",
        default="app",
        help="Output name; writes <output>.js and <output>.js.map",
    )
    return cap


def prune_main(argv=None, config_files=None):
    cap = _prune_parser(config_files)
    args = archsplit.apptools.parseargs(cap, argv)
    scanner = LexicalElisionScanner.from_args(args)

    logical_path = args.logical_path or os.path.relpath(args.filename)
    with open(args.filename, encoding="utf-8") as f:
        source = f.read()

    try:
        pruned = scanner.process(source, logical_path, args.arch)
    except UnterminatedRegionError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(pruned)
    else:
        sys.stdout.write(pruned)

    archsplit.timing.report_timing(args.verbose)
    return 0


def build_main(argv=None, config_files=None, cache=None):
    cap = _build_parser(config_files)
    args = archsplit.apptools.parseargs(cap, argv)

    if cache is None:
        cache = get_default_cache(TscCompilerAdapter.from_args(args), verbose=args.verbose)
    session = BuildSession(
        scanner=LexicalElisionScanner.from_args(args),
        cache=cache,
        scratch_root=args.scratch_dir,
        verbose=args.verbose,
    )

    try:
        for filename in args.filenames:
            session.add_source(
                os.path.abspath(filename), os.path.relpath(filename), args.arch, args.package
            )
    except UnterminatedRegionError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1

    output = session.finalize(args.arch, args.output + ".js", input_path=args.output)

    for diagnostic in output.diagnostics:
        print(diagnostic, file=sys.stderr)

    if output.data is not None:
        with open(output.path, "w", encoding="utf-8") as f:
            f.write(output.data)
        with open(output.path + ".map", "w", encoding="utf-8") as f:
            f.write(output.source_map or "")
        if args.verbose >= 1:
            print(f"Wrote {output.path}")

    if args.verbose >= 2:
        session.cache.print_stats()
    archsplit.timing.report_timing(args.verbose)

    has_errors = any(d.severity == "error" for d in output.diagnostics)
    return 1 if has_errors else 0


if __name__ == "__main__":
    sys.exit(build_main())
