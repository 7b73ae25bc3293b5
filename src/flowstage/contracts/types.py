"""Semantic type aliases for compile-time type safety."""

from typing import NewType

RecordID = NewType("RecordID", str)
"""Stable logical identity of a flow record (uuid4 hex)"""

RelationshipName = NewType("RelationshipName", str)
"""Name of an outbound relationship (e.g., 'success', 'failure')"""

SessionID = NewType("SessionID", str)
"""Identity of a single process session (one per invocation)"""
