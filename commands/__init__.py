"""CLI command modules.

This package contains:
- serve: Run the gateway
- control: Execute one command from the shell (send)
- resources: Bridge listings (lights, groups, scenes)
- mapping: Mapping commands (map, unmap, mappings, enable, disable)
- backup: Mapping export and import
- setup: Setup, configure and help commands
"""
