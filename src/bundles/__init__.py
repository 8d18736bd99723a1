"""Bundle metadata readers.

This module parses bundle Info.plists, Mach-O headers, and xctestrun
manifests into the typed descriptors the storage layer indexes.
"""
