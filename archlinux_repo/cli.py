# Copyright (C) 2019, QuantStack
# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Implementation of the 'archlinux-repo' command.

```
archlinux-repo core https://geo.mirror.pkgbuild.com/core/os/x86_64 search 'linux*'
archlinux-repo core https://geo.mirror.pkgbuild.com/core/os/x86_64 depends --all gcc
```
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime

import requests

from . import __version__
from .desc import dumps
from .exceptions import ArchRepoError
from .models import Dependency, Package
from .repository import load_repository

log = logging.getLogger(__name__)


def configure_parser(parser: argparse.ArgumentParser):
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("name", help="Repository name, e.g. 'core'.")
    parser.add_argument("url", help="Base URL holding <name>.db.tar.gz.")
    parser.add_argument(
        "--extension",
        default=".tar.gz",
        help="Database file extension. Defaults to '.tar.gz'.",
    )
    parser.add_argument("--json", action="store_true", help="Report results as JSON.")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Log more; repeat for debug output."
    )

    package_cmds = argparse.ArgumentParser(add_help=False)
    package_cmds.add_argument("package", help="Package name, base name or name-version.")

    subparser = parser.add_subparsers(dest="subcmd")

    search = subparser.add_parser("search", help="Show packages matching shell-style patterns.")
    search.add_argument("patterns", help="The target pattern(s).", nargs="+")

    subparser.add_parser(
        "info", help="Show the description of a package.", parents=[package_cmds]
    )

    depends = subparser.add_parser(
        "depends", help="Show dependencies of this package.", parents=[package_cmds]
    )
    depends.add_argument(
        "-a",
        "--all",
        action="store_true",
        help="Include optional, build-time and check-time dependencies.",
    )

    subparser.add_parser(
        "whoneeds", help="Show packages that depend on this package.", parents=[package_cmds]
    )

    subparser.add_parser(
        "files", help="Show files installed by this package.", parents=[package_cmds]
    )


def _jsonable(value):
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Package):
        return value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Dependency):
        return str(value)
    return value


def package_to_dict(package) -> dict:
    return {
        field.name: _jsonable(getattr(package, field.name))
        for field in dataclasses.fields(package)
    }


def _table(packages) -> str:
    return "\n".join(
        f"{package.name:<40} {package.version:<20} {package.description or ''}"
        for package in packages
    )


def repoquery(args: argparse.Namespace) -> int:
    if not args.subcmd:
        print(
            "archlinux-repo needs a subcommand (search, info, depends, whoneeds or files), e.g.:",
            file=sys.stderr,
        )
        print("    archlinux-repo core <url> search 'python*'\n", file=sys.stderr)
        return 1

    repo = load_repository(
        args.name, args.url, files_metadata=args.subcmd == "files", extension=args.extension
    )

    if args.subcmd == "search":
        found = {}
        for pattern in args.patterns:
            found.update((package.name, package) for package in repo.search(pattern))
        if args.json:
            print(json.dumps([package_to_dict(p) for p in found.values()], indent=2))
        else:
            print(_table(found.values()))
        return 0

    try:
        package = repo[args.package]
    except KeyError:
        print(f"Package {args.package} not found in {args.name}.", file=sys.stderr)
        return 1

    if args.subcmd == "info":
        if args.json:
            print(json.dumps(package_to_dict(package), indent=2))
        else:
            print(dumps(package), end="")
    elif args.subcmd == "depends":
        dependencies = list(package.depends)
        if args.all:
            dependencies += package.optdepends + package.makedepends + package.checkdepends
        if args.json:
            print(json.dumps([str(d) for d in dependencies], indent=2))
        else:
            print("\n".join(str(d) for d in dependencies))
    elif args.subcmd == "whoneeds":
        needed_by = repo.whoneeds(package.name)
        if args.json:
            print(json.dumps([package_to_dict(p) for p in needed_by], indent=2))
        else:
            print(_table(needed_by))
    elif args.subcmd == "files":
        files = repo.files(package.name) or []
        if args.json:
            print(json.dumps(files, indent=2))
        else:
            print("\n".join(files))
    else:
        raise ArchRepoError(f"Unrecognized subcommand: {args.subcmd}")

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="archlinux-repo", description="Query a pacman package repository."
    )
    configure_parser(parser)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=max(logging.WARNING - 10 * args.verbose, logging.DEBUG),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return repoquery(args)
    except (ArchRepoError, requests.RequestException) as e:
        log.debug("Query failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
