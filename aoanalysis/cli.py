#!/usr/bin/env python3
"""
Command-line interface for aoanalysis.

Usage:
    aoanalysis raw --term C2 [options]        Per-index series and map of one error term
    aoanalysis map --term C0 [options]        2D map of one error term
    aoanalysis all-raw [options]              Per-index series of every error term
    aoanalysis error-budget [options]         RMS error budget (table with system.star_mags)
    aoanalysis strehl [options]               Strehl ratio
    aoanalysis temporal-psd [options]         Temporal PSD of mode (temporal.k_m, temporal.k_n)
    aoanalysis temporal-psd-grid [options]    Build the temporal PSD grid in temporal.grid_dir
    aoanalysis analyze-grid [options]         Analyze the grid into temporal.grid_dir/sub_dir
    aoanalysis info                           Show presets and sensors

Options are read from --config (YAML or JSON) and overridden with
repeated --set section.key=value, e.g. --set system.star_mags=[0,5,10].
"""

import argparse
import logging
import os
import sys


def load_resolved(args):
    """Build the configuration from file, preset and --set overrides, then freeze it."""
    from .config import Config, load_config
    from .utils.logging import get_logger

    logger = get_logger()

    config = load_config(args.config) if args.config else Config()
    if args.model:
        config.set_option('model', args.model)
    for item in args.set or []:
        key, sep, value = item.partition('=')
        if not sep:
            logger.warning(f"Ignoring --set {item!r}: expected section.key=value")
            continue
        config.set_option(key.strip(), value)

    return config.resolve()


def run_routine(args, routine, **kwargs) -> int:
    """Run one analysis routine and dump the setup when it succeeds."""
    from .utils.compute import init_backend
    from .utils.logging import Timer, get_logger

    logger = get_logger()
    resolved = load_resolved(args)
    init_backend(resolved.precision, resolved.temporal.n_jobs)

    with Timer(args.command, logger):
        rv = routine(resolved, stream=sys.stdout, **kwargs)

    if rv == 0 and resolved.output.dump_setup:
        resolved.dump_setup()
    return rv


def cmd_raw(args):
    """Per-index series and map of one error term."""
    from .routines import raw
    return run_routine(args, raw, term=args.term, out_dir=args.output_dir)


def cmd_map(args):
    """2D map of one error term."""
    from .routines import map_term
    return run_routine(args, map_term, term=args.term, out_dir=args.output_dir)


def cmd_all_raw(args):
    from .routines import all_raw
    return run_routine(args, all_raw)


def cmd_error_budget(args):
    from .routines import error_budget
    return run_routine(args, error_budget)


def cmd_strehl(args):
    from .routines import strehl
    return run_routine(args, strehl)


def cmd_temporal_psd(args):
    from .routines import temporal_psd
    return run_routine(args, temporal_psd)


def cmd_temporal_psd_grid(args):
    from .routines import temporal_psd_grid
    return run_routine(args, temporal_psd_grid)


def cmd_analyze_grid(args):
    from .routines import analyze_grid
    return run_routine(args, analyze_grid)


def cmd_info(args):
    """Show presets, sensors and error terms."""
    from . import __version__
    from .config import list_models
    from .physics.wfs import list_wfs
    from .routines import TERM_ALIASES
    from .utils.compute import get_cpu_count

    print(f"aoanalysis {__version__}")
    print("=" * 50)
    print(f"CPU cores: {get_cpu_count()}")

    print("\nModel presets:")
    for name in list_models():
        print(f"  - {name}")

    print("\nWavefront sensors:")
    for name in list_wfs():
        print(f"  - {name}")

    print("\nError terms:")
    for alias, name in TERM_ALIASES.items():
        print(f"  - {alias}: {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='aoanalysis: Fourier-mode performance analysis of adaptive optics systems',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', '-c', help='Configuration file (YAML or JSON)')
    common.add_argument('--model', '-m', help='Model preset (Guyon2005, MagAOX, GMagAOX)')
    common.add_argument('--set', '-s', action='append', metavar='SECTION.KEY=VALUE',
                        help='Override one option; may be repeated')
    common.add_argument('--log-file', help='Also write the log to this file')
    common.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    term = argparse.ArgumentParser(add_help=False)
    term.add_argument('--term', '-t', default='C2',
                      help='Error term (C0, C1, C2, C4, C6, C7 or its full name)')
    term.add_argument('--output-dir', '-o', default='.', help='Directory for the .npy map')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('raw', parents=[common, term], help='Per-index series and map of one error term')
    subparsers.add_parser('map', parents=[common, term], help='2D map of one error term')
    subparsers.add_parser('all-raw', parents=[common], help='Per-index series of every error term')
    subparsers.add_parser('error-budget', parents=[common], help='RMS error budget')
    subparsers.add_parser('strehl', parents=[common], help='Strehl ratio')
    subparsers.add_parser('temporal-psd', parents=[common], help='Temporal PSD of one mode')
    subparsers.add_parser('temporal-psd-grid', parents=[common], help='Build the temporal PSD grid')
    subparsers.add_parser('analyze-grid', parents=[common], help='Analyze the temporal PSD grid')
    subparsers.add_parser('info', help='Show presets and sensors')

    return parser


COMMANDS = {
    'raw': cmd_raw,
    'map': cmd_map,
    'all-raw': cmd_all_raw,
    'error-budget': cmd_error_budget,
    'strehl': cmd_strehl,
    'temporal-psd': cmd_temporal_psd,
    'temporal-psd-grid': cmd_temporal_psd_grid,
    'analyze-grid': cmd_analyze_grid,
    'info': cmd_info,
}


def main(argv=None):
    """Main entry point."""
    from .errors import ConfigurationError
    from .utils.logging import get_logger, set_level

    parser = build_parser()
    args, stray = parser.parse_known_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logger = get_logger(log_file=getattr(args, "log_file", None))
    if getattr(args, "verbose", False):
        set_level(logging.DEBUG)
    for arg in stray:
        logger.warning(f"Unrecognized argument ignored: {arg}")

    try:
        rv = COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(1)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        if os.environ.get('AOANALYSIS_DEBUG'):
            raise
        sys.exit(-1)

    sys.exit(0 if rv == 0 else -1)


if __name__ == '__main__':
    main()
