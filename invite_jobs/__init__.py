"""
Invite portal background jobs

A durable job queue for the invite portal: persisted jobs with due-time
scheduling, single-owner locking via conditional writes, and retry with
exponential backoff and terminal-failure classification.
"""

__version__ = "1.0.0"
