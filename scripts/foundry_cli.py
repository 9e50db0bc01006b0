#!/usr/bin/env python3
"""CLI for managing the knowledge tree and its cross-references.

Usage:
    python scripts/foundry_cli.py init
    python scripts/foundry_cli.py import data/agora.json
    python scripts/foundry_cli.py export --out-dir exports/
    python scripts/foundry_cli.py patch changes.json
    python scripts/foundry_cli.py create --parent <id>
    python scripts/foundry_cli.py edit <id> --name "Fee markets"
    python scripts/foundry_cli.py move <id> <target-id> --position after
    python scripts/foundry_cli.py delete <id>
    python scripts/foundry_cli.py crossref --top 20
    python scripts/foundry_cli.py neighborhood <id> --radius 2
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog
from dotenv import load_dotenv
load_dotenv()  # Must run before any foundry.* imports

from foundry.errors import FoundryError
from foundry.graph import generate_cross_references, neighborhood
from foundry.ingestion import (
    PatchApplier,
    export_crossref_json,
    export_source_json,
    import_source_json,
    sanitize_filename,
)
from foundry.storage import PgNodeStore
from foundry.tree import TreeMutator, resolve_drop

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)
logger = structlog.get_logger()


def read_json(path: str):
    if path == "-":
        return json.load(sys.stdin)
    with open(path) as f:
        return json.load(f)


async def cmd_init(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Create the nodes table."""
    await store.initialize_schema()
    print("Schema ready.")


async def cmd_import(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Replace the whole tree with a source JSON file."""
    count = await import_source_json(store, read_json(args.path))
    print(f"Imported {count} nodes.")


async def cmd_export(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Write the tree and its cross-reference index as JSON files."""
    nodes = await store.list_all()
    tree = export_source_json(nodes)
    if tree is None:
        print("Memory is empty. Nothing to export.")
        return

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    root_name = tree["Name"] if isinstance(tree, dict) else "forest"
    base_name = sanitize_filename(root_name)

    source_path = out_dir / f"{base_name}.json"
    source_path.write_text(json.dumps(tree, indent=2))
    print(f"Wrote {source_path}")

    index = generate_cross_references(nodes)
    if len(index) == 0:
        print("Skipping cross-reference export: not enough interconnected data.")
        return

    crossref_path = out_dir / f"{base_name}-crossref.json"
    crossref_path.write_text(json.dumps(export_crossref_json(index), indent=2))
    print(f"Wrote {crossref_path}")


async def cmd_patch(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Apply a patch file atomically."""
    result = await PatchApplier(store).apply(read_json(args.path))
    print(f"Applied {result.operations} operations: "
          f"{len(result.added_ids)} added, {len(result.removed_ids)} removed, "
          f"{result.replaced} replaced.")
    for node_id in result.missing_targets:
        print(f"  Not found for replace: {node_id}")


async def cmd_create(store: PgNodeStore, args: argparse.Namespace) -> None:
    node_id = await TreeMutator(store).create_node(args.parent)
    print(node_id)


async def cmd_edit(store: PgNodeStore, args: argparse.Namespace) -> None:
    fields = {
        key: value
        for key, value in (("name", args.name), ("type", args.type), ("description", args.description))
        if value is not None
    }
    if not await TreeMutator(store).update_fields(args.node_id, **fields):
        print(f"Node {args.node_id} not found.")


async def cmd_move(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Move a node before, after or onto another node."""
    mutator = TreeMutator(store)
    forest = await mutator.load_forest()
    parent_id, sort_order = resolve_drop(forest, args.target_id, args.position)
    await mutator.reparent(args.node_id, parent_id, sort_order)
    print(f"Moved {args.node_id} under {parent_id or '<root>'} at position {sort_order}.")


async def cmd_delete(store: PgNodeStore, args: argparse.Namespace) -> None:
    deleted = await TreeMutator(store).delete_subtree(args.node_id)
    print(f"Deleted {len(deleted)} nodes.")


async def cmd_crossref(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Print the strongest inferred links."""
    nodes = await store.list_all()
    names = {node.id: node.name for node in nodes}
    index = generate_cross_references(nodes)

    print(f"Cross-references: {len(index)} nodes, {index.edge_count()} links\n")
    rows = [
        (link.confidence, source_id, link)
        for source_id in index
        for link in index.links_for(source_id)
    ]
    rows.sort(key=lambda row: -row[0])
    for confidence, source_id, link in rows[: args.top]:
        print(f"  [{confidence:.3f}] {names.get(source_id, source_id)} "
              f"-[{link.relation.value}]-> {names.get(link.target_id, link.target_id)}")
        print(f"          via: {', '.join(link.provenance)}")


async def cmd_neighborhood(store: PgNodeStore, args: argparse.Namespace) -> None:
    """Print the neighborhood of a node as JSON."""
    nodes = await store.list_all()
    index = generate_cross_references(nodes)
    subgraph = neighborhood(index, args.node_id, args.radius)
    print(json.dumps(subgraph.to_dict(), indent=2))


COMMANDS = {
    "init": cmd_init,
    "import": cmd_import,
    "export": cmd_export,
    "patch": cmd_patch,
    "create": cmd_create,
    "edit": cmd_edit,
    "move": cmd_move,
    "delete": cmd_delete,
    "crossref": cmd_crossref,
    "neighborhood": cmd_neighborhood,
}


async def run(args: argparse.Namespace) -> None:
    store = PgNodeStore(database_url=args.database_url)
    await store.connect()
    try:
        await COMMANDS[args.command](store, args)
    finally:
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Knowledge tree CLI")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the database schema")

    import_parser = subparsers.add_parser("import", help="Replace the tree from source JSON")
    import_parser.add_argument("path", help="JSON file, or - for stdin")

    export_parser = subparsers.add_parser("export", help="Export tree and cross-references")
    export_parser.add_argument("--out-dir", default="exports")

    patch_parser = subparsers.add_parser("patch", help="Apply a patch file")
    patch_parser.add_argument("path", help="JSON file, or - for stdin")

    create_parser = subparsers.add_parser("create", help="Create a placeholder node")
    create_parser.add_argument("--parent", default=None)

    edit_parser = subparsers.add_parser("edit", help="Replace node fields")
    edit_parser.add_argument("node_id")
    edit_parser.add_argument("--name")
    edit_parser.add_argument("--type")
    edit_parser.add_argument("--description")

    move_parser = subparsers.add_parser("move", help="Move a node relative to another")
    move_parser.add_argument("node_id")
    move_parser.add_argument("target_id")
    move_parser.add_argument("--position", choices=["before", "after", "onto"], default="onto")

    delete_parser = subparsers.add_parser("delete", help="Delete a node and its subtree")
    delete_parser.add_argument("node_id")

    crossref_parser = subparsers.add_parser("crossref", help="Show strongest inferred links")
    crossref_parser.add_argument("--top", type=int, default=20)

    hood_parser = subparsers.add_parser("neighborhood", help="Show a node's link neighborhood")
    hood_parser.add_argument("node_id")
    hood_parser.add_argument("--radius", type=int, default=2)

    args = parser.parse_args()

    try:
        asyncio.run(run(args))
    except FoundryError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
