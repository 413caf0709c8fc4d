"""
Listing Guard.

Free/paid listing gating for a marketplace: a global monetization phase plus
per-user monthly free-listing quotas.
"""
