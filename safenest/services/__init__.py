"""SafeNest child-safety services.

- crisis_guard: zero-data-path blocking for crisis resources
- safety_signal: silent help requests with offline retry
- safe_escape: instant location disable with a 72-hour silent window
- audit_service: hash-chained audit trail with sealed entries

All services use hash_pii() for child, family and member identifiers.
"""
