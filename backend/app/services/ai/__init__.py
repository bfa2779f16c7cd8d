"""
Chat AI services package.

Query dispatch to provider adapters, the fallback policy and the
per-turn orchestration that ties routing, providers, C.R.A.F.T
post-processing and keyword annotation together.
"""
