"""Cluster access, ingress watching and reconciliation."""
