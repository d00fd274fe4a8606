#!/usr/bin/env python3
"""
CLI for the raysdl scene compiler.

Usage:
    python -m raysdl check FILE [--time T]
    python -m raysdl tokens FILE
    python -m raysdl ast FILE
    python -m raysdl dump FILE [--time T] [--format yaml|json]

Global options (before the action):
    --config FILE.yaml   evaluation settings (seeds, globals, limits)
    --verbose            debug logging on stderr

Examples:
    # Check a scene for errors
    python -m raysdl check scenes/spheres.sdl

    # Show the bound scene for frame time 2.5 as JSON
    python -m raysdl dump scenes/orbit.sdl --time 2.5 --format json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml


def _read_source(path_str: str):
    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return source_path, None
    return source_path, source_path.read_text(encoding="utf-8")


def _load_config(args):
    from .config import SdlConfig, load_config

    if args.config:
        return load_config(args.config)
    return SdlConfig()


def cmd_check(args):
    """Lex, parse, evaluate and bind a file, reporting the first error."""
    from . import evaluate_source, bind_scene

    source_path, source = _read_source(args.file)
    if source is None:
        return 1

    config = _load_config(args)
    time = config.time if args.time is None else args.time
    accumulator = evaluate_source(source, config, time, str(source_path))
    scene = bind_scene(accumulator, time)

    singletons = ", ".join(sorted(accumulator.singletons)) or "none"
    print(f"OK: {source_path.name} - {len(scene.objects)} object(s), "
          f"{len(scene.lights)} light(s), singletons: {singletons}")
    return 0


def cmd_tokens(args):
    """Print the token stream of a file."""
    from . import tokenize

    source_path, source = _read_source(args.file)
    if source is None:
        return 1

    for token in tokenize(source, str(source_path)):
        print(f"{token.span.start.line}:{token.span.start.column}\t{token}")
    return 0


def cmd_ast(args):
    """Print the parsed AST of a file."""
    from . import compile_source, format_ast

    source_path, source = _read_source(args.file)
    if source is None:
        return 1

    print(format_ast(compile_source(source, str(source_path))))
    return 0


def cmd_dump(args):
    """Print the bound scene as YAML or JSON."""
    from . import load_scene

    source_path, source = _read_source(args.file)
    if source is None:
        return 1

    scene = load_scene(source, _load_config(args), args.time, str(source_path))
    data = scene.to_python()

    if args.format == "json":
        print(json.dumps(data, indent=2))
    else:
        print(yaml.safe_dump(data, sort_keys=False), end="")
    return 0


def main(argv=None):
    from .errors import DslError

    parser = argparse.ArgumentParser(
        prog='python -m raysdl',
        description='Scene description language compiler',
    )
    parser.add_argument('--config', metavar='FILE', help='YAML configuration file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='action', required=True)

    check_parser = subparsers.add_parser('check', help='Check a scene file for errors')
    check_parser.add_argument('file', help='SDL source file')
    check_parser.add_argument('-t', '--time', type=float, help='Value of the time variable')

    tokens_parser = subparsers.add_parser('tokens', help='Print the token stream')
    tokens_parser.add_argument('file', help='SDL source file')

    ast_parser = subparsers.add_parser('ast', help='Print the syntax tree')
    ast_parser.add_argument('file', help='SDL source file')

    dump_parser = subparsers.add_parser('dump', help='Print the bound scene')
    dump_parser.add_argument('file', help='SDL source file')
    dump_parser.add_argument('-t', '--time', type=float, help='Value of the time variable')
    dump_parser.add_argument('-f', '--format', choices=['yaml', 'json'], default='yaml',
                             help='Output format (default: yaml)')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        'check': cmd_check,
        'tokens': cmd_tokens,
        'ast': cmd_ast,
        'dump': cmd_dump,
    }

    try:
        return commands[args.action](args)
    except DslError as e:
        print(e, file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
