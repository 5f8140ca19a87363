from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any, Optional

import yaml

from .core import ConfigurationCore
from .errors import ConfigurationError, format_error
from .logging_utils import configure_logging
from .paths import CoreSettings

logger = logging.getLogger(__name__)


def _core_from_args(args: argparse.Namespace) -> ConfigurationCore:
    settings = CoreSettings.from_env()
    configure_logging(
        log_path=args.log or settings.log_path,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    return ConfigurationCore(args.store, settings=settings).initialize()


def _dump(data: Any, fmt: str = "json") -> str:
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip("\n")
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def _parse_value(text: str) -> Any:
    """Interpret a command line value as a YAML scalar/collection (8080, true, [a, b])."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def cmd_show(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    if args.module:
        data = core.get_module_configuration(args.module, args.env, expand=not args.raw)
    else:
        data = core.store
    print(_dump(data, args.format))
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    value = core.get_value(args.module, args.key, environment=args.env)
    # An explicit null counts as unset, as in schema validation.
    if value is None:
        print(f"ERROR: {args.module}.{args.key} is not set", file=sys.stderr)
        return 1
    print(value if isinstance(value, str) else _dump(value))
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.set_value(args.module, args.key, _parse_value(args.value), environment=args.env)
    print(f"{args.module}.{args.key} updated in {args.env or core.current_environment}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    problems = core.validate_all(args.env)
    if not problems:
        print("OK")
        return 0
    for module, issues in problems.items():
        for issue in issues:
            print(f"{module}: {issue}")
    return 1


def cmd_env_list(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    for env in core.list_environments():
        marker = "*" if env["current"] else " "
        desc = f"  {env['description']}" if env["description"] else ""
        print(f"{marker} {env['name']}{desc}")
    return 0


def cmd_env_create(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.new_environment(args.name, description=args.description, copy_from=args.copy_from)
    print(f"Created environment {args.name}")
    return 0


def cmd_env_use(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    previous = core.set_current_environment(args.name, force=bool(args.force))
    print(f"Switched environment {previous} -> {args.name}")
    return 0


def cmd_env_remove(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.remove_environment(args.name)
    print(f"Removed environment {args.name}")
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    info = core.backup(reason=args.reason)
    print(info.path)
    return 0


def cmd_backups(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    for info in core.list_backups():
        print(f"{info.name}\t{info.created.isoformat(timespec='seconds')}\t{info.size}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.restore(args.name)
    print(f"Restored {args.name}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    out = core.export(args.path, modules=args.module or None, environment=args.env)
    print(out)
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.import_(args.path, mode="replace" if args.replace else "merge")
    print(f"Imported {args.path}")
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    diffs = core.compare_environments(args.left, args.right, module=args.module)
    for d in diffs:
        if d.kind == "added":
            print(f"+ {d.path}: {d.right!r}")
        elif d.kind == "removed":
            print(f"- {d.path}: {d.left!r}")
        else:
            print(f"~ {d.path}: {d.left!r} -> {d.right!r}")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    core = _core_from_args(args)
    core.bus.subscribe("ConfigurationReloaded", lambda e: print(f"reloaded: {', '.join(e.data['modules'])}"))
    status = core.enable_hot_reload()
    print(f"Watching {status['path']} (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(float(args.interval))
    finally:
        core.disable_hot_reload()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="aither-config")
    p.add_argument("--store", default=None, help="Configuration store path (json|yaml); default per platform")
    p.add_argument("--log", default=None, help="Log file path")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("show", help="Print the store or one module's resolved configuration")
    sp.add_argument("--module", default=None)
    sp.add_argument("--env", default=None)
    sp.add_argument("--format", choices=["json", "yaml"], default="json")
    sp.add_argument("--raw", action="store_true", help="Do not expand ${...} placeholders")
    sp.set_defaults(func=cmd_show)

    sp = sub.add_parser("get", help="Print one value (dotted key)")
    sp.add_argument("module")
    sp.add_argument("key")
    sp.add_argument("--env", default=None)
    sp.set_defaults(func=cmd_get)

    sp = sub.add_parser("set", help="Set one value (dotted key); VALUE is parsed as YAML")
    sp.add_argument("module")
    sp.add_argument("key")
    sp.add_argument("value")
    sp.add_argument("--env", default=None)
    sp.set_defaults(func=cmd_set)

    sp = sub.add_parser("validate", help="Validate every module in an environment")
    sp.add_argument("--env", default=None)
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("env", help="Manage environments")
    env_sub = sp.add_subparsers(dest="env_cmd", required=True)

    esp = env_sub.add_parser("list", help="List environments")
    esp.set_defaults(func=cmd_env_list)

    esp = env_sub.add_parser("create", help="Create an environment")
    esp.add_argument("name")
    esp.add_argument("--description", default="")
    esp.add_argument("--copy-from", default=None)
    esp.set_defaults(func=cmd_env_create)

    esp = env_sub.add_parser("use", help="Switch the current environment")
    esp.add_argument("name")
    esp.add_argument("--force", action="store_true", help="Switch even if validation fails")
    esp.set_defaults(func=cmd_env_use)

    esp = env_sub.add_parser("remove", help="Remove an environment")
    esp.add_argument("name")
    esp.set_defaults(func=cmd_env_remove)

    sp = sub.add_parser("backup", help="Back up the store file")
    sp.add_argument("--reason", default=None)
    sp.set_defaults(func=cmd_backup)

    sp = sub.add_parser("backups", help="List backups, newest first")
    sp.set_defaults(func=cmd_backups)

    sp = sub.add_parser("restore", help="Restore a backup (name or absolute path)")
    sp.add_argument("name")
    sp.set_defaults(func=cmd_restore)

    sp = sub.add_parser("export", help="Export modules to a json|yaml file")
    sp.add_argument("path")
    sp.add_argument("--module", action="append", default=None, help="Repeat to export several modules")
    sp.add_argument("--env", default=None, help="Export only this environment")
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("import", help="Import a json|yaml file (merge by default)")
    sp.add_argument("path")
    sp.add_argument("--replace", action="store_true", help="Replace the whole store")
    sp.set_defaults(func=cmd_import)

    sp = sub.add_parser("diff", help="Compare resolved configuration of two environments")
    sp.add_argument("left")
    sp.add_argument("right")
    sp.add_argument("--module", default=None)
    sp.set_defaults(func=cmd_diff)

    sp = sub.add_parser("watch", help="Enable hot reload until interrupted")
    sp.add_argument("--interval", default="1.0", help=argparse.SUPPRESS)
    sp.set_defaults(func=cmd_watch)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except (ConfigurationError, KeyError, ValueError, TypeError) as e:
        logger.debug("Command %s failed: %s", args.subcmd, format_error(e), exc_info=True)
        msg = e.args[0] if isinstance(e, KeyError) and e.args else e
        print(f"ERROR: {msg}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
