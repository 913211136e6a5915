"""Adapters for the remote scripts API and the live log stream."""
