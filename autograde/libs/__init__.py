"""Shared libraries for autograde."""
