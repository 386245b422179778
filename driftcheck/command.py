# Copyright Red Hat
#
# driftcheck/command.py - Mirror drift checker command interface
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``driftcheck.command`` module provides both the driftcheck command
line interface infrastructure, and a simple procedural interface to the
``driftcheck`` library modules.

The procedural interface is used by the ``driftcheck`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the driftcheck object API.
"""
from argparse import ArgumentParser
from typing import Dict, List
from os.path import basename
from json import dumps
import logging
import sys

from driftcheck import (
    DRIFTCHECK_CONFIG_PATH,
    DRIFTCHECK_DEBUG_MANAGER,
    DRIFTCHECK_DEBUG_COMMAND,
    DRIFTCHECK_DEBUG_SCAN,
    DRIFTCHECK_DEBUG_STORE,
    DRIFTCHECK_DEBUG_RECONCILE,
    DRIFTCHECK_DEBUG_ALL,
    DRIFTCHECK_SUBSYSTEM_COMMAND,
    SubsystemFilter,
    set_debug_mask,
    ProgressAwareHandler,
    format_timestamp_ns,
    size_fmt,
    __version__,
)
from driftcheck.manager import CheckReport, DriftcheckConfig, Manager
from driftcheck.scan import FileRecord, ReconcileResults, ScanOptions, SuspectRecord
from driftcheck.scan.options import HASH_ALGORITHMS

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None

#: Command line arguments that override configured scan options.
_OPTION_ARGS = (
    "hash_algorithm",
    "workers",
    "follow_symlinks",
    "skip_delete_check",
    "commit_interval",
    "sync",
    "use_magic_file_type",
    "quiet",
)


def scan_roots(manager: Manager, roots: List[str]) -> CheckReport:
    """
    Scan and classify the roots named in ``roots``.

    :param manager: The manager context to use.
    :param roots: Root names or ``name=path`` specifications.
    :returns: A ``CheckReport`` with no reconciliation results.
    """
    root_ids = [manager.resolve_root(root) for root in roots]
    return manager.scan_roots(root_ids)


def check_roots(manager: Manager, roots: List[str]) -> CheckReport:
    """
    Scan and classify the roots named in ``roots`` then reconcile them.

    :param manager: The manager context to use.
    :param roots: Root names or ``name=path`` specifications.
    :returns: A ``CheckReport`` including reconciliation results.
    """
    root_ids = [manager.resolve_root(root) for root in roots]
    return manager.check(root_ids)


def compare_roots(manager: Manager, roots: List[str]) -> ReconcileResults:
    """
    Reconcile the stored state of the roots named in ``roots``.

    :param manager: The manager context to use.
    :param roots: Root names or ``name=path`` specifications.
    :returns: The reconciliation results.
    """
    root_ids = [manager.resolve_root(root) for root in roots]
    return manager.compare(root_ids)


def accept_paths(manager: Manager, root: str, paths: List[str]) -> List[FileRecord]:
    """
    Accept the current content of ``paths`` in ``root`` as the new baseline.

    :param manager: The manager context to use.
    :param root: A root name or ``name=path`` specification.
    :param paths: Paths relative to the root.
    :returns: The records written.
    """
    root_id = manager.resolve_root(root)
    return [manager.accept_suspect(root_id, path) for path in paths]


def show_suspects(manager: Manager, root: str, json: bool = False):
    """
    Print the suspect ledger of ``root``.

    :param manager: The manager context to use.
    :param root: A root name or ``name=path`` specification.
    :param json: Display output in JSON notation.
    """
    suspects: List[SuspectRecord] = manager.suspects(manager.resolve_root(root))
    if json:
        print(dumps([suspect.to_dict() for suspect in suspects], indent=4))
        return
    for suspect in suspects:
        print(
            f"{suspect.path}\n"
            f"  signature: {suspect.signature}\n"
            f"  mtime:     {format_timestamp_ns(suspect.timestamp)}\n"
            f"  detected:  {format_timestamp_ns(suspect.detected)}"
        )


def show_stats(manager: Manager, root: str, json: bool = False):
    """
    Print snapshot store statistics for ``root``.

    :param manager: The manager context to use.
    :param root: A root name or ``name=path`` specification.
    :param json: Display output in JSON notation.
    """
    stats = manager.stats(manager.resolve_root(root))
    if json:
        print(dumps(stats, indent=4))
        return
    print(
        f"Name:           {stats['name']}\n"
        f"Path:           {stats['path']}\n"
        f"Database:       {stats['database']} ({size_fmt(stats['database_size'])})\n"
        f"Hash algorithm: {stats['hash_algorithm']}\n"
        f"Records:        {stats['records']}\n"
        f"Total size:     {size_fmt(stats['total_size'])}\n"
        f"Average size:   {size_fmt(stats['average_size'])}\n"
        f"Suspects:       {stats['suspects']}\n"
        f"Created:        {format_timestamp_ns(stats['created'])}\n"
        f"Last updated:   {format_timestamp_ns(stats['last_updated'])}"
    )


def show_dupes(manager: Manager, root: str, json: bool = False):
    """
    Print groups of paths in ``root`` that share a content signature.

    :param manager: The manager context to use.
    :param root: A root name or ``name=path`` specification.
    :param json: Display output in JSON notation.
    """
    dupes: Dict[str, List[FileRecord]] = manager.dupes(manager.resolve_root(root))
    if json:
        print(
            dumps(
                {sig: [rec.path for rec in records] for sig, records in dupes.items()},
                indent=4,
            )
        )
        return
    for signature, records in dupes.items():
        print(signature)
        for record in records:
            print(f"  {record.path}")


def _scan_options(cmd_args, config: DriftcheckConfig) -> ScanOptions:
    """
    Build ``ScanOptions`` from the configuration with command line overrides.
    """
    overrides = {name: getattr(cmd_args, name, None) for name in _OPTION_ARGS}
    extra_excludes = getattr(cmd_args, "exclude_patterns", None) or []
    if extra_excludes:
        overrides["exclude_patterns"] = list(config.exclude_patterns) + extra_excludes
    if getattr(cmd_args, "json", False):
        overrides["quiet"] = True
    return config.scan_options(**overrides)


def _manager_from_args(cmd_args) -> Manager:
    config = DriftcheckConfig.from_file(cmd_args.config)
    options = _scan_options(cmd_args, config)
    _log_debug_command("Using scan options:\n%s", options)
    return Manager(config, options)


def _print_report(report: CheckReport, cmd_args):
    if cmd_args.json:
        print(report.json(pretty=True))
    else:
        print(report.short())


def _scan_cmd(cmd_args):
    """
    Scan command handler.

    Scan and classify each root, updating its snapshot store.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = _manager_from_args(cmd_args)
    report = scan_roots(manager, cmd_args.roots)
    _print_report(report, cmd_args)
    return 1 if report.failed else 0


def _check_cmd(cmd_args):
    """
    Check command handler.

    Scan and classify each root then reconcile the roots.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = _manager_from_args(cmd_args)
    report = check_roots(manager, cmd_args.roots)
    _print_report(report, cmd_args)
    return 1 if report.failed else 0


def _compare_cmd(cmd_args):
    """
    Compare command handler.

    Reconcile the stored state of each root without scanning.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = _manager_from_args(cmd_args)
    results = compare_roots(manager, cmd_args.roots)
    if cmd_args.json:
        print(results.json(pretty=True))
    else:
        print(results.summary())
        verdicts = results.short()
        if verdicts:
            print(f"\n{verdicts}")
    return 0


def _accept_cmd(cmd_args):
    """
    Accept command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = _manager_from_args(cmd_args)
    records = accept_paths(manager, cmd_args.root, cmd_args.paths)
    if cmd_args.json:
        print(dumps([record.to_dict() for record in records], indent=4))
    else:
        for record in records:
            print(f"Accepted {record.path}: {record.signature}")
    return 0


def _suspects_cmd(cmd_args):
    manager = _manager_from_args(cmd_args)
    show_suspects(manager, cmd_args.root, json=cmd_args.json)
    return 0


def _stats_cmd(cmd_args):
    manager = _manager_from_args(cmd_args)
    show_stats(manager, cmd_args.root, json=cmd_args.json)
    return 0


def _dupes_cmd(cmd_args):
    manager = _manager_from_args(cmd_args)
    show_dupes(manager, cmd_args.root, json=cmd_args.json)
    return 0


def setup_logging(cmd_args):
    """
    Set up driftcheck logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    driftcheck_log = logging.getLogger("driftcheck")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    driftcheck_log.setLevel(level)
    if driftcheck_log.hasHandlers():
        driftcheck_log.handlers.clear()

    # Subsystem log filtering
    _driftcheck_subsystem_filter = SubsystemFilter("driftcheck")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_driftcheck_subsystem_filter)

    driftcheck_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down driftcheck logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "manager": DRIFTCHECK_DEBUG_MANAGER,
        "command": DRIFTCHECK_DEBUG_COMMAND,
        "scan": DRIFTCHECK_DEBUG_SCAN,
        "store": DRIFTCHECK_DEBUG_STORE,
        "reconcile": DRIFTCHECK_DEBUG_RECONCILE,
        "all": DRIFTCHECK_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_json_arg(parser):
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Display output in JSON notation",
    )


def _add_roots_arg(parser, nargs="+"):
    parser.add_argument(
        "roots",
        metavar="ROOT",
        type=str,
        nargs=nargs,
        help="A configured root name or a NAME=PATH root specification",
    )


def _add_root_arg(parser):
    parser.add_argument(
        "root",
        metavar="ROOT",
        type=str,
        action="store",
        help="A configured root name or a NAME=PATH root specification",
    )


def _add_scan_args(parser):
    parser.add_argument(
        "-H",
        "--hash",
        dest="hash_algorithm",
        choices=HASH_ALGORITHMS,
        default=None,
        help="Content hash algorithm",
    )
    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        help="Number of files to hash concurrently within each root",
    )
    parser.add_argument(
        "-L",
        "--follow-symlinks",
        dest="follow_symlinks",
        action="store_const",
        const=True,
        default=None,
        help="Follow symbolic links when walking root directories",
    )
    parser.add_argument(
        "-x",
        "--exclude",
        dest="exclude_patterns",
        action="append",
        metavar="PATTERN",
        help="Exclude paths matching PATTERN (glob notation)",
    )
    parser.add_argument(
        "--skip-delete-check",
        dest="skip_delete_check",
        action="store_const",
        const=True,
        default=None,
        help="Do not detect or remove records for deleted paths",
    )
    parser.add_argument(
        "--commit-interval",
        type=int,
        default=None,
        help="Number of records between store commits (0 for one transaction)",
    )
    parser.add_argument(
        "--no-sync",
        dest="sync",
        action="store_const",
        const=False,
        default=None,
        help="Do not wait for store writes to reach stable storage",
    )
    parser.add_argument(
        "-m",
        "--magic",
        dest="use_magic_file_type",
        action="store_const",
        const=True,
        default=None,
        help="Check file types of suspect paths using libmagic",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_const",
        const=True,
        default=None,
        help="Do not output progress or status updates",
    )


SCAN_CMD = "scan"
CHECK_CMD = "check"
COMPARE_CMD = "compare"
ACCEPT_CMD = "accept"
SUSPECTS_CMD = "suspects"
STATS_CMD = "stats"
DUPES_CMD = "dupes"


def _add_command_subparsers(parser):
    """
    Add subparsers for all driftcheck commands.

    :param parser: The top level argument parser.
    """
    subparser = parser.add_subparsers(dest="command", help="Command")

    scan_parser = subparser.add_parser(
        SCAN_CMD, help="Scan roots and classify changes against their snapshots"
    )
    _add_roots_arg(scan_parser)
    _add_scan_args(scan_parser)
    _add_json_arg(scan_parser)
    scan_parser.set_defaults(func=_scan_cmd)

    check_parser = subparser.add_parser(
        CHECK_CMD, help="Scan mirrored roots and reconcile their content"
    )
    _add_roots_arg(check_parser)
    _add_scan_args(check_parser)
    _add_json_arg(check_parser)
    check_parser.set_defaults(func=_check_cmd)

    compare_parser = subparser.add_parser(
        COMPARE_CMD, help="Reconcile the stored snapshots of mirrored roots"
    )
    _add_roots_arg(compare_parser)
    _add_json_arg(compare_parser)
    compare_parser.set_defaults(func=_compare_cmd)

    accept_parser = subparser.add_parser(
        ACCEPT_CMD, help="Accept the current content of suspect paths"
    )
    _add_root_arg(accept_parser)
    accept_parser.add_argument(
        "paths",
        metavar="PATH",
        type=str,
        nargs="+",
        help="A path relative to ROOT to accept",
    )
    _add_scan_args(accept_parser)
    _add_json_arg(accept_parser)
    accept_parser.set_defaults(func=_accept_cmd)

    suspects_parser = subparser.add_parser(
        SUSPECTS_CMD, help="List the suspect paths of a root"
    )
    _add_root_arg(suspects_parser)
    _add_json_arg(suspects_parser)
    suspects_parser.set_defaults(func=_suspects_cmd)

    stats_parser = subparser.add_parser(
        STATS_CMD, help="Show snapshot store statistics for a root"
    )
    _add_root_arg(stats_parser)
    _add_json_arg(stats_parser)
    stats_parser.set_defaults(func=_stats_cmd)

    dupes_parser = subparser.add_parser(
        DUPES_CMD, help="List paths in a root with identical content"
    )
    _add_root_arg(dupes_parser)
    _add_json_arg(dupes_parser)
    dupes_parser.set_defaults(func=_dupes_cmd)


def main(args):
    """
    Main entry point for driftcheck.
    """
    parser = ArgumentParser(
        description="Mirror drift checker", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of driftcheck",
        version=__version__,
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        default=DRIFTCHECK_CONFIG_PATH,
        help="Path to the driftcheck configuration file",
    )

    _add_command_subparsers(parser)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point for driftcheck.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
