"""Shared type definitions for type checking.

Uses NewType for IDs to provide compile-time type safety - prevents mixing
different ID types (e.g., passing UserID where PropertyID expected).

Uses TypeAlias for complex types that are purely structural.
"""

from typing import NewType, TypeAlias

# ID types using NewType for type safety
PropertyID = NewType("PropertyID", str)
UserID = NewType("UserID", str)
AdminID = NewType("AdminID", str)
AlertID = NewType("AlertID", str)
NotificationID = NewType("NotificationID", str)

# Structural aliases
DedupKey: TypeAlias = str  # recipient:cause:subject
DateString: TypeAlias = str  # YYYY-MM-DD (UTC)
TemplateVariables: TypeAlias = dict[str, str]
