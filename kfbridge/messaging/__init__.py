"""Messaging platform integrations."""
