"""Normalization helpers and the merge audit trail."""
