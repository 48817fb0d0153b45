"""Adapters — bindings to package-manager binaries and upstream HTTP APIs."""
