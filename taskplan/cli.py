#!/usr/bin/env python3
"""taskplan CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from taskplan.commands import generate as cmd_generate_module
from taskplan.commands import mark as cmd_mark_module
from taskplan.commands import retire as cmd_retire_module
from taskplan.commands import status as cmd_status_module
from taskplan.commands import verify as cmd_verify_module
from taskplan.lib.config import load_config
from taskplan.lib.constants import EXIT_MISSING_INPUT, EXIT_VALIDATION, MAX_FEATURE_LEN
from taskplan.lib.errors import PipelineError
from taskplan.lib.validate import ValidationError
from taskplan.pipeline.loader import is_valid_feature

STATUS_CHOICES = ("pending", "in_progress", "done")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='taskplan',
        description='Turn PRD and architecture documents into a numbered task list with a traceability matrix',
    )
    parser.add_argument('--dir', '-C', default='.', help='Working directory holding the feature documents')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # taskplan generate
    p_generate = subparsers.add_parser('generate', help='Generate task list and traceability matrix')
    p_generate.add_argument('feature', help='Feature name (matches prd-<feature>.md)')
    p_generate.add_argument('--non-interactive', action='store_true', help='Auto-approve the proposed task groups')
    p_generate.add_argument('--dry-run', action='store_true', help='Print the documents instead of writing files')
    p_generate.add_argument('--output-dir', help='Where to write documents (default: working directory)')
    p_generate.add_argument('--max-lines', type=int, help='Split task documents above this many lines')
    p_generate.set_defaults(func=cmd_generate_module.cmd_generate)

    # taskplan status
    p_status = subparsers.add_parser('status', help='Show progress of the current task list')
    p_status.add_argument('feature', help='Feature name')
    p_status.set_defaults(func=cmd_status_module.cmd_status)

    # taskplan mark
    p_mark = subparsers.add_parser('mark', help='Set a subtask status')
    p_mark.add_argument('feature', help='Feature name')
    p_mark.add_argument('ordinal', help='Subtask ordinal, e.g. 1.2')
    p_mark.add_argument('status', choices=STATUS_CHOICES, help='New status')
    p_mark.set_defaults(func=cmd_mark_module.cmd_mark)

    # taskplan retire
    p_retire = subparsers.add_parser('retire', help='Delete a subtask, leaving a documented gap')
    p_retire.add_argument('feature', help='Feature name')
    p_retire.add_argument('ordinal', help='Subtask ordinal, e.g. 1.2')
    p_retire.set_defaults(func=cmd_retire_module.cmd_retire)

    # taskplan verify
    p_verify = subparsers.add_parser('verify', help='Check task list against the traceability matrix')
    p_verify.add_argument('feature', help='Feature name')
    p_verify.set_defaults(func=cmd_verify_module.cmd_verify)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    if not is_valid_feature(args.feature):
        print(f"ERROR: Invalid feature name '{args.feature}'", file=sys.stderr)
        print(f"  Must be 1-{MAX_FEATURE_LEN} chars: lowercase letters, digits, '.', '_' or '-'", file=sys.stderr)
        return EXIT_VALIDATION

    work_dir = Path(args.dir).resolve()
    if not work_dir.is_dir():
        print(f"ERROR: Working directory not found: {work_dir}", file=sys.stderr)
        return EXIT_MISSING_INPUT

    try:
        config = load_config(work_dir)
    except ValueError as e:
        print(f"ERROR: Invalid taskplan.env: {e}", file=sys.stderr)
        return EXIT_VALIDATION

    if getattr(args, 'max_lines', None) is not None and args.max_lines <= 0:
        print("ERROR: --max-lines must be positive", file=sys.stderr)
        return EXIT_VALIDATION

    try:
        return args.func(args, config)
    except PipelineError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    except ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION


if __name__ == '__main__':
    sys.exit(main())
