"""
Property alerts: user-owned search criteria, the matching predicate, and
the fan-out that notifies owners when a listing matches.
"""
