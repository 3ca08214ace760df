"""Adapters for the world outside the marker.

These modules talk to GitLab and read the released module's build files,
turning both into the plain values the marker works with.
"""
