"""Data models and utility functions.

This package contains:
- command: Command parsing (text grammar and JSON) and bridge payloads
- mapping: Mappings and mapping backups
- colour: Hex colour to CIE xy conversion
- utils: Utility functions (display_width, find_similar_strings, etc.)
"""
