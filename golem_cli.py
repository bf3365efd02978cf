"""
Interactive shell for golem.

    python golem_cli.py --load corpus/            chat with a loaded corpus
    python golem_cli.py -c "session list"          run one command and exit

Plain lines are chat input for the current session. Lines starting with
``:`` are commands (``:load path``, ``:session create``, ``:help``);
``:quit`` leaves.
"""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path
from typing import Iterable

from golem.bot import Golem
from golem.config import GolemConfig
from golem.errors import CommandError


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="golem pattern interpreter shell")
    parser.add_argument(
        "--load",
        type=Path,
        action="append",
        default=[],
        help="Corpus file or directory to load before the prompt (repeatable).",
    )
    parser.add_argument(
        "--sraix-config",
        type=Path,
        help="JSON file or directory of external service configs.",
    )
    parser.add_argument(
        "--persist",
        type=Path,
        help="SQLite file for categories learned with learnf.",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        help="Recursion limit for srai/sr chains.",
    )
    parser.add_argument(
        "-c",
        "--command",
        type=str,
        help="Run a single command (e.g. 'chat hello') and exit.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Debug logging.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def build_bot(args: argparse.Namespace) -> Golem:
    overrides = {}
    if args.persist:
        overrides["persistence_path"] = str(args.persist)
    if args.max_depth:
        overrides["max_recursion_depth"] = args.max_depth
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    config = GolemConfig.from_env(**overrides)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    bot = Golem(config)
    for path in args.load:
        result = bot.load(path)
        print(f"[load] {len(result.categories)} categories from {path}")
        for error in result.errors:
            print(f"[load] rejected: {error}")
    if args.sraix_config:
        names = bot.load_sraix_configs(args.sraix_config)
        print(f"[sraix] services: {', '.join(names) or 'none'}")
    return bot


def run_command(bot: Golem, line: str) -> str:
    parts = shlex.split(line)
    if not parts:
        return ""
    return bot.execute(parts[0], parts[1:])


def run_shell(bot: Golem) -> None:
    session = bot.create_session()
    print(f"Session {session.id}. Type to chat, ':help' for commands, ':quit' to leave.")
    while True:
        try:
            raw = input("> ").strip()
        except EOFError:
            print()
            break

        if raw == "":
            continue
        if raw in (":quit", ":exit"):
            break
        if raw.startswith(":"):
            try:
                output = run_command(bot, raw[1:])
            except (CommandError, ValueError) as exc:
                output = f"[error] {exc}"
            if output:
                print(output)
            continue

        print(bot.process_input(raw))


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    bot = build_bot(args)
    try:
        if args.command:
            try:
                print(run_command(bot, args.command))
            except CommandError as exc:
                print(f"[error] {exc}", file=sys.stderr)
                return 1
            return 0
        run_shell(bot)
        return 0
    finally:
        bot.close()


if __name__ == "__main__":
    sys.exit(main())
