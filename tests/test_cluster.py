import asyncio

import pytest

from raftkv.cluster import build_cluster, main, run_cluster
from raftkv.messages import ClientRequest, ClientResponse, ServerState


def test_build_cluster_peers_exclude_self():
    ids = ["node1", "node2", "node3"]
    servers = build_cluster(ids)
    assert set(servers) == set(ids)
    for node_id, server in servers.items():
        assert server.id == node_id
        assert server.peers == frozenset(ids) - {node_id}


def test_build_cluster_wires_inboxes():
    servers = build_cluster(["a", "b"])
    for server in servers.values():
        assert set(server.senders) == {"a", "b"}
        for target, queue in server.senders.items():
            assert queue is servers[target].inbox


def test_build_cluster_rejects_duplicates():
    with pytest.raises(ValueError):
        build_cluster(["a", "a", "b"])


def test_build_cluster_rejects_empty():
    with pytest.raises(ValueError):
        build_cluster([])


async def _wait_for(predicate, timeout=3.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest.mark.asyncio
async def test_built_cluster_elects_leader_and_accepts_commands():
    servers = build_cluster(["node1", "node2", "node3"])
    servers["node1"].election_timeout = 0.05
    servers["node2"].election_timeout = 30.0
    servers["node3"].election_timeout = 30.0
    client_queue = asyncio.Queue()
    for server in servers.values():
        server.senders["client"] = client_queue

    tasks = [asyncio.create_task(s.run()) for s in servers.values()]
    try:
        elected = await _wait_for(
            lambda: servers["node1"].state is ServerState.LEADER
        )
        assert elected
        assert servers["node1"].current_term == 1
        assert servers["node2"].state is ServerState.FOLLOWER
        assert servers["node3"].state is ServerState.FOLLOWER

        await servers["node2"].inbox.put(ClientRequest("SET a 1", "client"))
        rejected = await asyncio.wait_for(client_queue.get(), 2.0)
        assert rejected == ClientResponse(success=False, result="Not the leader")

        await servers["node1"].inbox.put(ClientRequest("SET a 1", "client"))
        accepted = await asyncio.wait_for(client_queue.get(), 2.0)
        assert accepted == ClientResponse(success=True, result="Command received")
        assert servers["node1"].log[-1].command == "SET a 1"

        replicated = await _wait_for(
            lambda: all(s.log[-1].command == "SET a 1" for s in servers.values())
        )
        assert replicated
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


@pytest.mark.asyncio
async def test_run_cluster_stops_and_keeps_one_leader_per_term(capsys):
    ids = ["a", "b", "c"]
    servers = await run_cluster(ids, 1.0)
    assert set(servers) == set(ids)
    leader_terms = [
        s.current_term for s in servers.values() if s.state is ServerState.LEADER
    ]
    assert len(leader_terms) == len(set(leader_terms))
    out = capsys.readouterr().out
    for node_id in ids:
        assert f"Starting node {node_id}" in out


def test_main_runs_for_duration(capsys):
    assert main(["--duration", "0.3", "x", "y", "z"]) == 0
    out = capsys.readouterr().out
    assert "Starting node x" in out
    assert "Starting node z" in out
    assert "x: " in out


def test_main_rejects_duplicate_ids():
    with pytest.raises(SystemExit) as excinfo:
        main(["--duration", "0.1", "x", "x"])
    assert excinfo.value.code == 2