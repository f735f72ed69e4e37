import argparse
import inspect
import os
from typing import Any


def extractinitargs(args: argparse.Namespace, classname: type) -> dict[str, Any]:
    """ Extract the arguments that classname.__init__ needs out of args """
    function_args = inspect.getfullargspec(classname.__init__).args
    return {key: value for key, value in vars(args).items() if key in function_args}


def add_flag_argument(
    parser: argparse.ArgumentParser,
    name: str,
    dest: str | None = None,
    default: bool = False,
    help: str | None = None
) -> None:
    """ Add a flag argument to an ArgumentParser instance.
        Either the --flag is present or the --no-flag is present.
    """
    dest = dest or name
    group = parser.add_mutually_exclusive_group()
    bool_help = f"{help} Use --no-{name} to turn the feature off."
    group.add_argument(
        f"--{name}", dest=dest, default=default, action="store_true", help=bool_help
    )
    group.add_argument(
        f"--no-{name}", dest=dest, action="store_false", default=default
    )


def removemount(absolutepath: str) -> str:
    """ Strip the drive and root so the path can be nested under another directory """
    _, tail = os.path.splitdrive(absolutepath)
    return tail.lstrip("/\\")
