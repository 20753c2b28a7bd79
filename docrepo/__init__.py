"""
docrepo - soft-delete-aware document repositories and credential authentication.
"""

__version__ = "0.1.0"
__version_info__ = (0, 1, 0)
