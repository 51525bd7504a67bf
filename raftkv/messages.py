"""Log entries, server roles and the messages exchanged between Raft nodes."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class LogEntry:
    """One entry of the replicated log."""

    term: int
    command: str
    index: int


class ServerState(enum.Enum):
    """Role a server currently plays in the cluster."""

    FOLLOWER = "follower"
    CANDIDATE = "candidate"
    LEADER = "leader"


@dataclass(frozen=True)
class RequestVote:
    """A candidate asking for a vote."""

    term: int
    candidate_id: str
    last_log_index: int
    last_log_term: int


@dataclass(frozen=True)
class RequestVoteResponse:
    """Answer to a vote request."""

    term: int
    vote_granted: bool


@dataclass(frozen=True)
class AppendEntries:
    """Log replication request; carries no entries when used as a heartbeat."""

    term: int
    leader_id: str
    prev_log_index: int
    prev_log_term: int
    entries: tuple[LogEntry, ...] = field(default_factory=tuple)
    leader_commit: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))


@dataclass(frozen=True)
class AppendEntriesResponse:
    """Answer to a replication request."""

    term: int
    success: bool
    match_index: int


@dataclass(frozen=True)
class ClientRequest:
    """A command submitted by a client."""

    command: str
    client_id: str


@dataclass(frozen=True)
class ClientResponse:
    """Answer to a client request."""

    success: bool
    result: str


Message = Union[
    RequestVote,
    RequestVoteResponse,
    AppendEntries,
    AppendEntriesResponse,
    ClientRequest,
    ClientResponse,
]