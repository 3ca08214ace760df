"""Submodule release marker for GitLab parent projects.

Records the version of every released submodule on a single tracking issue
in a shared parent project and appends each release's notes to it as a
comment.
"""

__version__ = "0.1.0"
