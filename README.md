# raftkv

raftkv runs a small Raft cluster inside one asyncio event loop. Each node is a
`raftkv.server.RaftServer`. A node holds a replicated log and applies committed
commands to an in-memory key-value store, which is a plain dict in its
`state_machine` attribute. Nodes pass messages to each other through asyncio
queues.

A node does the following:

- It holds leader elections. The election timeout is picked at random between
  150 and 299 ms unless you pass `election_timeout` in seconds.
- As leader, it sends `AppendEntries` heartbeats and replication once more than
  50 ms have passed since the last round.
- It applies committed entries to its store, which accepts two commands:
  - `SET <key> <value>` stores a value. The value may contain spaces.
  - `DEL <key>` removes a key.
  - Any other command is ignored.

## Installation

```
pip install .
```

To install the test tools as well:

```
pip install .[test]
```

## Command line

```
raftkv
```

This starts a three-node cluster with the nodes `node1`, `node2` and `node3`.
The cluster runs until you interrupt it.

You can name the nodes yourself and limit how long the cluster runs:

```
raftkv a b c d e --duration 2
```

When `--duration` is given, the command stops after that many seconds and
prints each node's final role and term. Node ids must be unique, and an error
is reported if they are not.

## Library use

### Running a cluster

`raftkv.cluster.build_cluster(node_ids)` creates one `RaftServer` for each id.
Each node knows the other nodes as its peers, and every node can reach every
other node's inbox. The function returns a dict keyed by node id.

`raftkv.cluster.run_cluster(node_ids, duration)` builds a cluster, runs every
node as a task and returns the servers. If `duration` is `None`, it runs
forever.

```python
import asyncio
from raftkv.cluster import run_cluster

servers = asyncio.run(run_cluster(["a", "b", "c"], duration=1.0))
for server in servers.values():
    print(server.id, server.state.value, server.current_term)
```

### Driving a single node

You drive a node by passing messages to its `handle_message` coroutine. The
message types are dataclasses in `raftkv.messages`:

| Message | Purpose |
|---|---|
| `RequestVote` | ask for a vote in an election |
| `RequestVoteResponse` | answer to a vote request |
| `AppendEntries` | replicate `LogEntry` items; a heartbeat when it carries none |
| `AppendEntriesResponse` | answer to a replication request |
| `ClientRequest` | submit a command |
| `ClientResponse` | answer to a client request |

```python
import asyncio
from raftkv.messages import AppendEntries, LogEntry
from raftkv.server import RaftServer

async def demo():
    node = RaftServer("b", ["a", "c"], election_timeout=0.2)
    await node.handle_message(AppendEntries(
        term=1, leader_id="a", prev_log_index=0, prev_log_term=0,
        entries=[LogEntry(term=1, command="SET x 1", index=1)],
        leader_commit=1,
    ))
    await node.apply_committed_entries()
    return node.state_machine   # {"x": "1"}

print(asyncio.run(demo()))
```

Replies go to the queues registered with `RaftServer.connect(senders)`. The
`senders` argument maps ids to queues, and a reply to an id with no queue is
dropped. A node that is not the leader answers a `ClientRequest` with a
`ClientResponse` whose result is `"Not the leader"`.

`raftkv.server.apply_command(state_machine, command)` applies a single command
to any dict.

`ServerState` in `raftkv.messages` lists the three roles: `FOLLOWER`,
`CANDIDATE` and `LEADER`.

## What it does not do

- Nodes communicate only through in-process queues. There is no network
  transport.
- The log, term and vote are kept only in memory. Nothing is stored on disk.
- The leader acknowledges a `ClientRequest` with `"Command received"` as soon
  as it appends the entry to its log. It does not wait for the entry to be
  committed.
- A follower does not tell the client which node is the leader.
- There is no command for reading values from the store. You read a node's
  `state_machine` directly.

## Tests

```
pytest
```