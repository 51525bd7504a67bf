"""A single Raft node backed by a small key-value state machine."""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Iterable, Mapping

from raftkv.messages import (
    AppendEntries,
    AppendEntriesResponse,
    ClientRequest,
    ClientResponse,
    LogEntry,
    Message,
    RequestVote,
    RequestVoteResponse,
    ServerState,
)

HEARTBEAT_INTERVAL = 0.05
POLL_INTERVAL = 0.01
INBOX_CAPACITY = 100


def apply_command(state_machine: dict[str, str], command: str) -> None:
    """Apply a ``SET key value`` or ``DEL key`` command; anything else is ignored."""
    parts = command.split(" ", 2)
    match parts:
        case ["SET", key, value]:
            state_machine[key] = value
        case ["DEL", key, *_]:
            state_machine.pop(key, None)


class RaftServer:
    """One member of a Raft cluster, communicating through asyncio queues."""

    def __init__(
        self,
        server_id: str,
        peers: Iterable[str],
        election_timeout: float | None = None,
    ) -> None:
        self.id = server_id
        self.state = ServerState.FOLLOWER
        self.current_term = 0
        self.voted_for: str | None = None
        self.log: list[LogEntry] = [LogEntry(term=0, command="", index=0)]
        self.commit_index = 0
        self.last_applied = 0
        self.next_index: dict[str, int] = {}
        self.match_index: dict[str, int] = {}
        self.peers = frozenset(peers)
        self.senders: dict[str, asyncio.Queue[Message]] = {}
        self.inbox: asyncio.Queue[Message] = asyncio.Queue(maxsize=INBOX_CAPACITY)
        self.last_heartbeat = time.monotonic()
        if election_timeout is None:
            election_timeout = random.randrange(150, 300) / 1000
        self.election_timeout = election_timeout
        self.state_machine: dict[str, str] = {}

    def connect(self, senders: Mapping[str, asyncio.Queue[Message]]) -> None:
        """Set the queues used to reach other nodes and clients, by id."""
        self.senders = dict(senders)

    @property
    def last_log_index(self) -> int:
        return len(self.log) - 1

    def _majority(self, count: int) -> bool:
        return count > (len(self.peers) + 1) // 2

    def _since_heartbeat(self) -> float:
        return time.monotonic() - self.last_heartbeat

    def _step_down(self, term: int) -> None:
        self.current_term = term
        self.state = ServerState.FOLLOWER
        self.voted_for = None

    async def _send(self, target: str, message: Message) -> None:
        queue = self.senders.get(target)
        if queue is not None:
            await queue.put(message)

    def _try_receive(self) -> Message | None:
        try:
            return self.inbox.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def run(self) -> None:
        """Run the node forever; cancel the task to stop it."""
        while True:
            if self.state is ServerState.LEADER:
                if self._since_heartbeat() > HEARTBEAT_INTERVAL:
                    await self.send_heartbeats()
                    self.last_heartbeat = time.monotonic()
            elif self._since_heartbeat() > self.election_timeout:
                await self.start_election()

            message = self._try_receive()
            if message is not None:
                await self.handle_message(message)

            await self.apply_committed_entries()
            await asyncio.sleep(POLL_INTERVAL)

    async def start_election(self) -> None:
        """Become a candidate, request votes and collect them until the timeout."""
        self.state = ServerState.CANDIDATE
        self.current_term += 1
        self.voted_for = self.id
        self.last_heartbeat = time.monotonic()

        votes_received = 1
        for peer in sorted(self.peers):
            request = RequestVote(
                term=self.current_term,
                candidate_id=self.id,
                last_log_index=self.last_log_index,
                last_log_term=self.log[-1].term,
            )
            await self._send(peer, request)

        election_end = time.monotonic() + self.election_timeout
        while time.monotonic() < election_end and self.state is ServerState.CANDIDATE:
            message = self._try_receive()
            if isinstance(message, RequestVoteResponse):
                if message.term > self.current_term:
                    self._step_down(message.term)
                    break
                if message.vote_granted and message.term == self.current_term:
                    votes_received += 1
                    if self._majority(votes_received):
                        await self.become_leader()
                        break
            elif message is not None:
                await self.handle_message(message)
            await asyncio.sleep(POLL_INTERVAL)

    async def become_leader(self) -> None:
        """Take leadership after winning an election."""
        if self.state is not ServerState.CANDIDATE:
            return
        self.state = ServerState.LEADER
        for peer in sorted(self.peers):
            self.next_index[peer] = self.last_log_index + 1
            self.match_index[peer] = 0
        await self.send_heartbeats()

    async def send_heartbeats(self) -> None:
        """Send an AppendEntries request to every peer."""
        for peer in sorted(self.peers):
            await self.send_append_entries(peer)
        self.last_heartbeat = time.monotonic()

    async def send_append_entries(self, peer: str) -> None:
        """Send the entries the peer is missing, or a heartbeat if it has them all."""
        next_idx = self.next_index.get(peer)
        if next_idx is None:
            return
        prev_log_index = next_idx - 1
        if 0 < prev_log_index < len(self.log):
            prev_log_term = self.log[prev_log_index].term
        else:
            prev_log_term = 0
        request = AppendEntries(
            term=self.current_term,
            leader_id=self.id,
            prev_log_index=prev_log_index,
            prev_log_term=prev_log_term,
            entries=tuple(self.log[next_idx:]),
            leader_commit=self.commit_index,
        )
        await self._send(peer, request)

    async def handle_message(self, message: Message) -> None:
        """Dispatch an incoming message; unexpected kinds are ignored."""
        match message:
            case RequestVote():
                await self._on_request_vote(message)
            case AppendEntries():
                await self._on_append_entries(message)
            case AppendEntriesResponse():
                await self._on_append_entries_response(message)
            case ClientRequest():
                await self._on_client_request(message)

    async def _on_request_vote(self, request: RequestVote) -> None:
        if request.term > self.current_term:
            self._step_down(request.term)

        our_last_term = self.log[-1].term
        log_is_ok = request.last_log_term > our_last_term or (
            request.last_log_term == our_last_term
            and request.last_log_index >= self.last_log_index
        )
        vote_granted = False
        if (
            request.term >= self.current_term
            and self.voted_for in (None, request.candidate_id)
            and log_is_ok
        ):
            self.voted_for = request.candidate_id
            vote_granted = True
            self.last_heartbeat = time.monotonic()

        await self._send(
            request.candidate_id,
            RequestVoteResponse(term=self.current_term, vote_granted=vote_granted),
        )

    async def _on_append_entries(self, request: AppendEntries) -> None:
        success = False
        match_index = 0

        if request.term > self.current_term:
            self._step_down(request.term)

        if request.term >= self.current_term:
            self.state = ServerState.FOLLOWER
            self.last_heartbeat = time.monotonic()

            prev = request.prev_log_index
            log_ok = prev == 0 or (
                prev < len(self.log) and self.log[prev].term == request.prev_log_term
            )
            if log_ok:
                success = True
                entries = request.entries
                skipped = 0
                for idx, entry in enumerate(entries, start=prev + 1):
                    if idx >= len(self.log):
                        break
                    if self.log[idx].term != entry.term:
                        del self.log[idx:]
                        break
                    skipped += 1
                self.log.extend(entries[skipped:])

                match_index = prev + len(entries)
                if request.leader_commit > self.commit_index:
                    self.commit_index = min(request.leader_commit, self.last_log_index)

        await self._send(
            request.leader_id,
            AppendEntriesResponse(
                term=self.current_term, success=success, match_index=match_index
            ),
        )

    async def _on_append_entries_response(self, response: AppendEntriesResponse) -> None:
        if response.term > self.current_term:
            self._step_down(response.term)
            return
        if self.state is not ServerState.LEADER or response.term != self.current_term:
            return

        peer = self.find_peer_by_match_index(response.match_index)
        if peer is None:
            return
        if response.success:
            if peer in self.next_index:
                self.next_index[peer] = response.match_index + 1
            self.match_index[peer] = response.match_index
            self.update_commit_index()
        else:
            if self.next_index.get(peer, 0) > 1:
                self.next_index[peer] -= 1
            await self.send_append_entries(peer)

    async def _on_client_request(self, request: ClientRequest) -> None:
        if self.state is not ServerState.LEADER:
            await self._send(
                request.client_id, ClientResponse(success=False, result="Not the leader")
            )
            return
        self.log.append(
            LogEntry(term=self.current_term, command=request.command, index=len(self.log))
        )
        await self.send_heartbeats()
        await self._send(
            request.client_id, ClientResponse(success=True, result="Command received")
        )

    async def apply_committed_entries(self) -> None:
        """Apply every committed but not yet applied entry to the state machine."""
        while self.last_applied < self.commit_index:
            self.last_applied += 1
            command = self.log[self.last_applied].command
            if command:
                apply_command(self.state_machine, command)

    def update_commit_index(self) -> None:
        """Advance the commit index over entries of this term held by a majority."""
        if self.state is not ServerState.LEADER:
            return
        for n in range(self.commit_index + 1, len(self.log)):
            count = 1 + sum(1 for idx in self.match_index.values() if idx >= n)
            if self._majority(count) and self.log[n].term == self.current_term:
                self.commit_index = n
            else:
                break

    def find_peer_by_match_index(self, match_index: int) -> str | None:
        """Return the first peer whose recorded match index equals the given one."""
        return next(
            (peer for peer, idx in self.match_index.items() if idx == match_index), None
        )