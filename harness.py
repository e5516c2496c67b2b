"""
Interactive harness for testing vault-timeline without MCP integration.

Usage:
    python harness.py <VAULT_ROOT> [--format dataview] [--exclude .git,.obsidian]

Drops you into an interactive REPL where you can call cache methods directly.
Also runs a quick smoke test on startup to verify scanning and layout work.
"""

import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add src/ to path so imports work
sys.path.insert(0, str(Path(__file__).parent / "src"))

from vault_timeline.api.handlers import handle_convert, handle_forest, handle_parse, handle_timeline
from vault_timeline.cache.vault_cache import VaultCache
from vault_timeline.config import TimelineConfig


def _print_task(t, indent: int = 0) -> None:
    when = t.scheduled or t.due or ""
    print(f"    {'  ' * indent}[{t.id}] {t.title}  {when}")


def smoke_test(cache: VaultCache) -> None:
    """Quick automated checks after initialization."""
    st = cache.status()
    print("\n=== Smoke Test ===")
    print(f"  Vault root:     {st['vault_root']}")
    print(f"  Files indexed:  {st['files_indexed']}")
    print(f"  Tasks indexed:  {st['tasks_indexed']}")
    print(f"  Not started:    {st['tasks_not_started']}")
    print(f"  Field format:   {st['field_format']}")

    open_tasks = cache.query_tasks(completed=False, limit=10)
    print(f"\n  Open tasks (first 10): {len(open_tasks)}")
    for t in open_tasks[:5]:
        _print_task(t)

    timeline = cache.day_timeline()
    c = timeline.classification
    print(f"\n  Today {timeline.window.start_iso} .. {timeline.window.end_iso}")
    print(f"    past={len(c.past)} all_day={len(c.all_day)} blocks={len(timeline.blocks)} upcoming={len(c.upcoming)}")
    for block in timeline.blocks:
        titles = ", ".join(t.title for t in block.tasks)
        print(f"    {block.start_iso[11:]}-{block.end_iso[11:]}  {titles}  (+{len(block.blocks)} nested)")

    print("\n=== Smoke Test Complete ===\n")


def repl(cache: VaultCache) -> None:
    """Simple REPL for interactive exploration."""
    print("Interactive mode. Type 'help' for commands, 'quit' to exit.\n")

    commands = {
        "help":     "Show this help",
        "status":   "Show cache status",
        "tasks":    "List tasks. Usage: tasks [path=PREFIX] [tag=#x] [completed=true] [scheduled_on=DATE] [limit=20]",
        "task":     "Get task by ID. Usage: task <id>",
        "day":      "Timeline for a day. Usage: day [YYYY-MM-DD] [past]",
        "forest":   "Task trees. Usage: forest [path-prefix]",
        "parse":    "Parse a task line. Usage: parse <text>",
        "convert":  "Convert a task line. Usage: convert <format> <text>",
        "quit":     "Exit",
    }

    while True:
        try:
            line = input("vault-timeline> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not line:
            continue

        parts = line.split()
        cmd = parts[0].lower()
        rest = line[len(parts[0]):].strip()

        try:
            if cmd == "quit" or cmd == "exit":
                break

            elif cmd == "help":
                for k, v in commands.items():
                    print(f"  {k:12s} {v}")

            elif cmd == "status":
                print(json.dumps(cache.status(), indent=2, default=str))

            elif cmd == "tasks":
                kwargs = {}
                for arg in parts[1:]:
                    if "=" in arg:
                        k, v = arg.split("=", 1)
                        if k == "limit":
                            kwargs[k] = int(v)
                        elif k == "completed":
                            kwargs[k] = v.lower() in ("true", "1", "yes")
                        else:
                            kwargs[k] = v
                results = cache.query_tasks(**kwargs)
                print(f"Found {len(results)} tasks:")
                for t in results:
                    _print_task(t)

            elif cmd == "task":
                task = cache.get_task(rest)
                if task:
                    print(json.dumps(asdict(task), indent=2, default=str))
                else:
                    print(f"  Task '{rest}' not found")

            elif cmd == "day":
                day = next((p for p in parts[1:] if p != "past"), None)
                result = handle_timeline(cache, day=day, past="past" in parts[1:])
                print(json.dumps(result, indent=2))

            elif cmd == "forest":
                print(json.dumps(handle_forest(cache, path=rest or None), indent=2))

            elif cmd == "parse":
                print(json.dumps(handle_parse(cache, text=rest), indent=2))

            elif cmd == "convert":
                fmt, _, text = rest.partition(" ")
                print(handle_convert(cache, text=text, to_format=fmt)["text"])

            else:
                print(f"  Unknown command '{cmd}'. Type 'help'.")
        except Exception as e:
            print(f"  Error: {e}")


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    env = {"VAULT_ROOT": sys.argv[1]}
    args = sys.argv[2:]
    for flag, key in (("--format", "FIELD_FORMAT"), ("--exclude", "EXCLUDE_DIRS")):
        if flag in args:
            env[key] = args[args.index(flag) + 1]

    config = TimelineConfig.from_env(env)
    cache = VaultCache()
    cache.initialize(config.vault_root, config)

    smoke_test(cache)
    repl(cache)


if __name__ == "__main__":
    main()
