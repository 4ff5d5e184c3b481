"""
`svs` command line helpers.

Commands
- hash MODULE:SCHEMA      print the schema shape and fingerprint; with
                          `--output` write/merge a module defining
                          SCHEMA_HASHES_BY_VERSION.
- check-migrations MODULE:REGISTRY
                          fail when the registry has duplicate versions or
                          gaps between `--from-version` and its newest version.
"""

from __future__ import annotations

import argparse
import ast
import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .common.schema_shape import extract_shape
from .common.hashing import simple_hash
from .errors import InvalidSchemaError
from .migrations import MigrationRegistry, duplicate_versions
from .models import Migration


logger = logging.getLogger(__name__)

HASHES_NAME = "SCHEMA_HASHES_BY_VERSION"

_HEADER = """\
# Auto-generated by `svs hash` - do not edit manually
"""


def load_object(target: str) -> Any:
    """Import `package.module:attr` (dotted attribute paths allowed)."""
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Expected MODULE:ATTRIBUTE, got {target!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr_path.split("."):
        obj = getattr(obj, part)
    return obj


def read_hashes_file(path: Path) -> Dict[int, str]:
    """Read SCHEMA_HASHES_BY_VERSION from a generated module without importing it."""
    if not path.exists():
        return {}
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    for node in tree.body:
        targets: List[ast.expr] = []
        if isinstance(node, ast.Assign):
            targets = list(node.targets)
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets = [node.target]
        if any(isinstance(t, ast.Name) and t.id == HASHES_NAME for t in targets):
            value = ast.literal_eval(node.value)  # type: ignore[arg-type]
            if not isinstance(value, dict):
                raise ValueError(f"{HASHES_NAME} in {path} is not a dict literal")
            return {int(k): str(v) for k, v in value.items()}
    return {}


def render_hashes_module(hashes: Dict[int, str]) -> str:
    lines = [_HEADER, f"{HASHES_NAME} = {{"]
    for version in sorted(hashes):
        lines.append(f"    {version}: {hashes[version]!r},")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_hashes_file(path: Path, version: int, schema_hash: str) -> Dict[int, str]:
    hashes = read_hashes_file(path)
    previous = hashes.get(version)
    if previous is not None and previous != schema_hash:
        logger.warning(
            "Replacing hash %s for version %d with %s; bump the version if the schema changed",
            previous,
            version,
            schema_hash,
        )
    hashes[version] = schema_hash
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_hashes_module(hashes), encoding="utf-8")
    return hashes


def _as_migrations(obj: Any) -> List[Migration]:
    if isinstance(obj, MigrationRegistry):
        return obj.migrations()
    if callable(obj) and not isinstance(obj, Migration):
        obj = obj()
    items = list(obj)
    for item in items:
        if not isinstance(item, Migration):
            raise TypeError(f"Expected Migration entries, got {item!r}")
    return items


def check_migrations(migrations: Sequence[Migration], from_version: int) -> List[str]:
    """Return human-readable problems; empty when the sequence is complete."""
    problems: List[str] = []
    dupes = duplicate_versions(migrations)
    if dupes:
        problems.append("duplicate versions: " + ", ".join(str(v) for v in dupes))
    versions = {m.version for m in migrations}
    if versions:
        top = max(versions)
        missing = [v for v in range(from_version + 1, top + 1) if v not in versions]
        if missing:
            problems.append("missing versions: " + ", ".join(str(v) for v in missing))
    return problems


# -------- Commands --------
def _cmd_hash(args: argparse.Namespace) -> int:
    schema = load_object(args.schema)
    try:
        shape = extract_shape(schema)
    except InvalidSchemaError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    schema_hash = simple_hash(shape)
    print(f"shape: {shape}")
    print(f"hash:  {schema_hash}")
    if args.output:
        path = Path(args.output)
        write_hashes_file(path, args.version, schema_hash)
        print(f"wrote {HASHES_NAME}[{args.version}] to {path}")
    return 0


def _cmd_check_migrations(args: argparse.Namespace) -> int:
    migrations = _as_migrations(load_object(args.registry))
    problems = check_migrations(migrations, args.from_version)
    if problems:
        for p in problems:
            print(f"error: {p}", file=sys.stderr)
        return 1
    versions = sorted(m.version for m in migrations)
    latest = versions[-1] if versions else 1
    print(f"ok: {len(versions)} migration(s), current version {latest}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="svs", description="Schema-versioned state tooling")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_hash = sub.add_parser("hash", help="compute a schema fingerprint")
    p_hash.add_argument("schema", help="MODULE:SCHEMA, e.g. myapp.state:AppState")
    p_hash.add_argument("--version", type=int, default=1, help="schema version (default: 1)")
    p_hash.add_argument("--output", help="hashes module to write or merge into")
    p_hash.set_defaults(func=_cmd_hash)

    p_check = sub.add_parser("check-migrations", help="verify a migration registry has no gaps")
    p_check.add_argument("registry", help="MODULE:REGISTRY (MigrationRegistry or list of Migration)")
    p_check.add_argument(
        "--from-version",
        type=int,
        default=0,
        help="oldest version stored data may have; unversioned data counts as 0 (default: 0)",
    )
    p_check.set_defaults(func=_cmd_check_migrations)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # Make the current directory importable, like `python -m`
    if "" not in sys.path:
        sys.path.insert(0, "")
    try:
        return args.func(args)
    except (ImportError, AttributeError, ValueError, TypeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
