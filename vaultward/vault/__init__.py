"""Vaults, memberships, key envelopes, items and credential rotation."""
