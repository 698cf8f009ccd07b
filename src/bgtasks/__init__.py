"""
bgtasks — background task scheduling and retry orchestration.

Registers deferred/periodic work, executes it on demand, retries failures
with fixed, exponential or jittered backoff, and drains a best-effort sync
queue. Lifecycle transitions are published on an EventChannel.
"""

__version__ = "1.0.0"
