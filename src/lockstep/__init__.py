"""LockStep: adaptive Failure-Tracking and Abuse-Throttling Engine.

A small defensive-throttling engine featuring retry with exponential
backoff, per-operation circuit breaking with escalating cooldowns, and a
four-level account lockout state machine for authentication flows.
"""

__version__ = "1.0.0"
