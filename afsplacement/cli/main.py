#!/usr/bin/env python3
"""
Command-line entry point for afs-placement.

Usage:
    # Put the primary on afs1 and replicas on afs2 and afs3, any partition
    afsplace move user.alice afs1 . afs2 . afs3 c-f

    # Show what would happen without doing it
    afsplace move -n user.alice afs1 a afs2 b

    # Move one site off a server being retired
    afsplace evacuate user.alice afs4/b afs5 .

    # Reconcile every volume listed in a file
    afsplace batch --stop-file /tmp/stop volumes.txt afs1 . afs2 .

    # Partition capacity report
    afsplace partinfo afs1
"""

import argparse
import shlex
import sys
from typing import List, Optional, Sequence

from afsplacement.capacity.partinfo import VosPartitionInfo, format_report
from afsplacement.core.errors import InvalidTopology, PlacementError
from afsplacement.core.models import Location
from afsplacement.core.partitions import PartitionSpec
from afsplacement.core.runner import CommandRunner, SubprocessRunner
from afsplacement.execution.commands import VosCommandExecutor
from afsplacement.inspection.probe import probe_inspector
from afsplacement.planner.topology import SiteRef
from afsplacement.reconcile.batch import BatchReconciler, parse_batch
from afsplacement.reconcile.service import ReconcileOptions, ReconcileResult, Reconciler
from afsplacement.utils.config import PlacementConfig, load_config
from afsplacement.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _add_plan_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '-f', '--force',
        action='store_true',
        help='Release even if the primary has unreleased changes'
    )

    parser.add_argument(
        '-n', '--dry-run',
        action='store_true',
        help='Show the plan and the vos commands without running them'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        default=None,
        help='Fraction of a partition that may be filled (default: from config, 0.90)'
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog='afsplace',
        description='Converge AFS volume placement to a desired topology'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML configuration file merged over the defaults'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from config, INFO)'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        default=None,
        choices=['json', 'console'],
        help='Log output format (default: from config, console)'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    move = commands.add_parser(
        'move',
        help='Converge one volume to a full topology (primary first)'
    )
    _add_plan_options(move)
    move.add_argument('volume', help='Read-write volume name')
    move.add_argument(
        'locations',
        nargs='+',
        metavar='SERVER PARTITION',
        help='Server and partition spec pairs, primary first'
    )

    evacuate = commands.add_parser(
        'evacuate',
        help='Move a single site of a volume, leaving the others alone'
    )
    _add_plan_options(evacuate)
    evacuate.add_argument('volume', help='Read-write volume name')
    evacuate.add_argument('source', help='Site to move, as server or server/partition')
    evacuate.add_argument('server', help='Destination server')
    evacuate.add_argument('partition', help='Destination partition spec')

    batch = commands.add_parser(
        'batch',
        help='Reconcile every volume listed in a file'
    )
    _add_plan_options(batch)
    batch.add_argument(
        '--stop-file',
        type=str,
        default=None,
        help='Halt between volumes once this file exists'
    )
    batch.add_argument('file', help='Volume list, "-" for standard input')
    batch.add_argument(
        'locations',
        nargs='*',
        metavar='SERVER PARTITION',
        help='Shared locations for lines holding only a volume name'
    )

    partinfo = commands.add_parser(
        'partinfo',
        help='Show partition capacity of a server'
    )
    partinfo.add_argument(
        '--threshold',
        type=float,
        default=None,
        help='Threshold used for the available column'
    )
    partinfo.add_argument('server', help='Server hostname')
    partinfo.add_argument(
        'partition',
        nargs='?',
        default='.',
        help='Partition spec to report (default: all)'
    )

    return parser.parse_args(argv)


def parse_locations(words: Sequence[str]) -> List[Location]:
    """
    Turn SERVER PARTITION word pairs into locations.

    Args:
        words: Alternating server names and partition specs

    Returns:
        Locations in order

    Raises:
        InvalidTopology: If the words do not pair up
    """
    if len(words) % 2:
        raise InvalidTopology(None, "server and partition arguments must come in pairs")
    return [Location.parse(words[i], words[i + 1]) for i in range(0, len(words), 2)]


def build_reconciler(config: PlacementConfig, runner: CommandRunner) -> Reconciler:
    """
    Wire up a reconciler against the installed vos.

    Args:
        config: Placement configuration
        runner: Command runner

    Returns:
        Reconciler
    """
    return Reconciler(
        inspector=probe_inspector(runner, config),
        partitions=VosPartitionInfo(runner, config),
        executor=VosCommandExecutor(runner, config),
        config=config,
    )


def _print_result(result: ReconcileResult, executor: VosCommandExecutor) -> None:
    for line in result.render():
        print(line)
    if result.dry_run:
        for op in result.plan:
            print(f"    {shlex.join(executor.command_for(op))}")


def _options(args: argparse.Namespace, single_site: Optional[SiteRef] = None) -> ReconcileOptions:
    return ReconcileOptions(
        force=args.force,
        threshold=args.threshold,
        single_site=single_site,
        dry_run=args.dry_run,
    )


def run_command(
    args: argparse.Namespace,
    config: PlacementConfig,
    runner: CommandRunner,
) -> int:
    """
    Run a parsed command.

    Args:
        args: Parsed arguments
        config: Placement configuration
        runner: Command runner

    Returns:
        Exit status
    """
    if args.command == 'partinfo':
        threshold = args.threshold if args.threshold is not None else config.threshold
        spec = PartitionSpec.parse(args.partition)
        partitions = [
            p for p in VosPartitionInfo(runner, config).partitions(args.server)
            if spec.matches(p.name)
        ]
        for line in format_report(partitions, threshold):
            print(line)
        return 0

    if args.command in ('move', 'evacuate'):
        # Arguments are checked before vos is run at all
        try:
            if args.command == 'move':
                desired = parse_locations(args.locations)
                options = _options(args)
            else:
                desired = [Location.parse(args.server, args.partition)]
                options = _options(args, single_site=SiteRef.parse(args.source))
        except PlacementError as e:
            raise type(e)(args.volume, e.detail) from e

        reconciler = build_reconciler(config, runner)
        result = reconciler.reconcile(args.volume, desired, options)
        _print_result(result, reconciler.executor)
        return 0 if result.ok else 1

    # batch
    shared = parse_locations(args.locations)
    if args.file == '-':
        items = parse_batch(sys.stdin, shared)
    else:
        with open(args.file, 'r') as f:
            items = parse_batch(f, shared)

    reconciler = build_reconciler(config, runner)
    executor = reconciler.executor
    stop_file = args.stop_file or config.stop_file
    summary = BatchReconciler(reconciler, stop_file=stop_file).run(items, _options(args))

    for result in summary.results:
        _print_result(result, executor)
    for line in summary.render():
        print(line)

    return 0 if summary.ok else 1


def main(
    argv: Optional[Sequence[str]] = None,
    runner: Optional[CommandRunner] = None,
) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"afsplace: cannot load configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(
        log_level=args.log_level or config.log_level,
        log_format=args.log_format or config.log_format,
    )

    try:
        return run_command(args, config, runner or SubprocessRunner())
    except PlacementError as e:
        logger.error("Placement failed", volume=e.volume, rule=e.rule, error=e.detail)
        print(f"afsplace: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error("I/O error", error=str(e))
        print(f"afsplace: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
