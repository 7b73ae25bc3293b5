"""
flowstage: a transactional single-record flow-processing stage.

Records are acquired from an input queue, transformed, and routed to
named relationships with at-least-once delivery: a session either commits
every routing decision at once or rolls back and returns its inputs.
"""

__version__ = "0.1.0"
