import os
import sys

import configargparse

import archsplit
import archsplit.timing
import archsplit.utils
from archsplit.architecture import DEFAULT_SERVER_ARCH

CONFIG_FILENAME = "archsplit.conf"


def default_config_files(cwd=None):
    """Config files in increasing order of precedence."""
    if cwd is None:
        cwd = os.getcwd()
    user_config_dir = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return [
        os.path.join(user_config_dir, "archsplit", CONFIG_FILENAME),
        os.path.join(cwd, CONFIG_FILENAME),
    ]


def create_parser(description, config_files=None):
    if config_files is None:
        config_files = default_config_files()
    return configargparse.ArgumentParser(
        description=description,
        formatter_class=configargparse.ArgumentDefaultsHelpFormatter,
        default_config_files=config_files,
        args_for_setting_config_path=["-c", "--config"],
        auto_env_var_prefix="ARCHSPLIT_",
        ignore_unknown_config_file_keys=True,
    )


def add_common_arguments(cap):
    """Arguments shared by every archsplit tool"""
    cap.add("--version", action="version", version=archsplit.__version__)
    cap.add(
        "-v",
        "--verbose",
        help="Output verbosity. Add more v's to make it more verbose",
        action="count",
        default=0,
    )
    cap.add(
        "-q",
        "--quiet",
        help="Decrement verbosity. Useful in apps where the default verbosity > 0.",
        action="count",
        default=0,
    )
    cap.add(
        "--arch",
        default="web.browser",
        help="Target architecture, e.g. os, os.linux.x86_64, web.browser",
    )
    cap.add(
        "--server-arch",
        default=DEFAULT_SERVER_ARCH,
        help="The architecture (and its dotted sub-architectures) treated as server",
    )
    archsplit.utils.add_flag_argument(
        parser=cap,
        name="timing",
        default=False,
        help="Report time spent pruning and compiling.",
    )


def parseargs(cap, argv):
    args = cap.parse_args(args=argv)
    args.verbose -= args.quiet
    archsplit.timing.initialize_timer(enabled=args.timing)
    if args.verbose >= 2:
        print(cap.format_values(), file=sys.stderr)
    return args
