"""An in-process Raft cluster replicating an in-memory key-value store."""

__version__ = "0.1.0"
__all__ = ["messages", "server", "cluster"]