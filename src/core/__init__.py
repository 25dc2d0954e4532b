"""Core domain package for noticeguard.

Fingerprinting, allow-rule matching, the suppression pipeline and the
admin service. Nothing here imports sqlite3 or textual; stores and the
authorization check arrive through core.ports.
"""
