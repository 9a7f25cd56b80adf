"""Plugins bundled with mediaproc and loaded on every run."""
