"""Per-target artifact storage.

This module persists test bundles, applications, dylibs, dSYMs, and
frameworks on local disk and indexes them by bundle identifier.
"""
