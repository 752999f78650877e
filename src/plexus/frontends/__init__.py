"""Frontends - user interfaces for plexus.

Submodules:
    cli/    Command-line interface
    sdk/    Python client for a running server
"""
