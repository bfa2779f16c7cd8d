"""
Query routing package.

Maps raw user text to a RoutingDecision (provider, complexity, pipeline
flags, target region) using named rule tables. No I/O.
"""
