"""Plugins shipped with adminkit."""
