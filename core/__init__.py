"""Core gateway functionality.

This package contains:
- controller: HueBridge class for Hue API v2 interaction
- cache: Resource state cache fed by fetches and bridge events
- events: Bridge event stream ingestion
- resolver: External id to Hue resource index
- hub: Connected clients, status fan-out and command execution
- server: Websocket and HTTP endpoint for controllers
- config: Configuration file and environment overrides
- log: Logging setup
"""
