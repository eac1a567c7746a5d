"""Durable backends for the video history: local slot cache and remote store contract."""
