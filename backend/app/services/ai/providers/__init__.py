"""
Provider adapters.

One adapter per backend capability (fast, research, complex), all
implementing ProviderAdapter.generate and selected through the
ProviderRegistry by ProviderKind.
"""
