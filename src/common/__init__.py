"""Shared infrastructure for ClusterRefine.

Error types, structured logging setup and step metrics used by the
participation learning modules.
"""
