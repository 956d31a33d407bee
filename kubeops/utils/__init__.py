"""Helpers for talking to Kubernetes."""
