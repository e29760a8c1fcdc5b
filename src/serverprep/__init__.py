"""Prepare and tear down a remote host for a Puma/nginx application over SSH."""

__version__ = "0.1.0"
