"""
Reconciliation engine: pure domain rules over model instances.

No commits happen here. Services (purchasing/services) load aggregates, call the
engine and own the transaction.
"""
