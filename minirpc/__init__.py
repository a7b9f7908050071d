"""Small TCP RPC framework with a coroutine thread pool and batching logger."""

__version__ = "0.1.0"