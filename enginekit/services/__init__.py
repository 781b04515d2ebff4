"""Loaders for the Python scripts an engine keeps on disk.

Environment files, config initializers, legacy plugins, routes files and
seeds are plain scripts executed with the owning engine in their globals.
"""
