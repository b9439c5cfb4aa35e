"""Shared types, exceptions and clients for the AgriChain launcher."""
