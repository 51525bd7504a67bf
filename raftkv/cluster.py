"""Build and run an in-process Raft cluster whose nodes talk over asyncio queues."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence

from raftkv.server import RaftServer

DEFAULT_NODE_IDS = ("node1", "node2", "node3")


def build_cluster(node_ids: Sequence[str]) -> dict[str, RaftServer]:
    """Create one server per id, each knowing the others as peers, and wire them up."""
    ids = list(node_ids)
    if not ids:
        raise ValueError("a cluster needs at least one node")
    if len(set(ids)) != len(ids):
        raise ValueError("node ids must be unique")

    servers = {
        node_id: RaftServer(node_id, (peer for peer in ids if peer != node_id))
        for node_id in ids
    }
    senders = {node_id: server.inbox for node_id, server in servers.items()}
    for server in servers.values():
        server.connect(senders)
    return servers


async def _run_node(server: RaftServer) -> None:
    print(f"Starting node {server.id}", flush=True)
    await server.run()


async def run_cluster(
    node_ids: Sequence[str], duration: float | None = None
) -> dict[str, RaftServer]:
    """Run a cluster for ``duration`` seconds (forever if None) and return its servers."""
    servers = build_cluster(node_ids)
    tasks = [asyncio.create_task(_run_node(server)) for server in servers.values()]
    try:
        if duration is None:
            await asyncio.gather(*tasks)
        else:
            await asyncio.sleep(duration)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return servers


def main(argv: Sequence[str] | None = None) -> int:
    """Start a cluster from the command line and report each node's final role."""
    parser = argparse.ArgumentParser(description="Run an in-process Raft cluster.")
    parser.add_argument(
        "node_ids",
        nargs="*",
        default=list(DEFAULT_NODE_IDS),
        help="ids of the nodes to start",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="seconds to run before stopping; runs until interrupted if omitted",
    )
    args = parser.parse_args(argv)

    try:
        servers = asyncio.run(run_cluster(args.node_ids, args.duration))
    except ValueError as exc:
        parser.error(str(exc))
    except KeyboardInterrupt:
        return 130

    for server in servers.values():
        print(f"{server.id}: {server.state.value} (term {server.current_term})")
    return 0