"""Principals, credential verifiers, device sessions and the AuthGateway."""
