"""
Vaultward — vault access control and key distribution.

The server stores only opaque ciphertext. Each member of a vault holds an
envelope (the vault key wrapped for that member client-side); vaultward
decides who may fetch which envelope, who may change membership, and
records every privilege-relevant action in an append-only audit trail.

Components:
    vaultward.policy             — AccessPolicyEngine (capability matrix)
    vaultward.vault.envelopes    — KeyEnvelopeStore
    vaultward.vault.registry     — VaultRegistry (vault + membership lifecycle)
    vaultward.audit.trail        — AuditTrail
    vaultward.auth.gateway       — AuthGateway (bearer token → principal)
"""

__version__ = "0.1.0"
