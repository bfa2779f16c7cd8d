"""
C.R.A.F.T content post-processing package.

Five fixed stages (cut, review, add, fact-check, trust-build) applied to
provider output. Every stage emits an audit record.
"""
