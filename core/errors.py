"""Exception hierarchy for the gateway.

All gateway errors inherit from GatewayError so callers can catch every
app-specific failure in one place. Each error carries:

- `user_message`: short message safe to send back to a controller
- `technical_message`: detailed message for the log
- `recoverable`: whether retrying the same operation can succeed

```
GatewayError
├── InvalidFormat          (colour string is not 6 hex digits)
├── ParseError             (malformed command text/JSON)
├── ResolutionError        (no enabled mapping for a target/mood)
├── BridgeError            (upstream HTTP failure or unexpected response)
├── StreamError            (event-stream failure, retried automatically)
├── CacheMiss              (resource state not cached yet)
├── DuplicateMappingError  (two enabled mappings for one external id)
└── ConfigError            (configuration file unreadable)
```
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, user_message: str, technical_message: str | None = None,
                 recoverable: bool = False):
        super().__init__(user_message)
        self.user_message = user_message
        self.technical_message = technical_message or user_message
        self.recoverable = recoverable

    def __str__(self) -> str:
        return self.user_message


class InvalidFormat(GatewayError, ValueError):
    """A colour string is not exactly six hexadecimal digits."""

    def __init__(self, value: str):
        super().__init__(f"invalid colour value: {value!r}")
        self.value = value


class ParseError(GatewayError):
    """A command could not be parsed.

    Attributes:
        token: The offending token (or the whole message when no single
            token is to blame)
    """

    def __init__(self, message: str, token: str = ''):
        super().__init__(message, recoverable=True)
        self.token = token


class ResolutionError(GatewayError):
    """No enabled mapping exists for a target or mood."""

    def __init__(self, target: str, mood_number: int | None = None):
        if mood_number is None:
            message = f"no mapping found for target: {target}"
        else:
            message = f"no mapping found for mood {mood_number} of target: {target}"
        super().__init__(message, recoverable=True)
        self.target = target
        self.mood_number = mood_number


class BridgeError(GatewayError):
    """The Hue Bridge rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ''):
        technical = message if not body else f"{message} - {body}"
        super().__init__(message, technical_message=technical, recoverable=True)
        self.status_code = status_code
        self.body = body


class StreamError(GatewayError):
    """The bridge event stream failed; the ingestion loop reconnects."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class CacheMiss(GatewayError):
    """A resource state was requested before it was fetched."""

    def __init__(self, resource_id: str):
        super().__init__(f"resource not cached: {resource_id}", recoverable=True)
        self.resource_id = resource_id


class DuplicateMappingError(GatewayError, ValueError):
    """An enabled mapping already uses this external id."""

    def __init__(self, external_id: str, existing_id: str):
        super().__init__(
            f"external id '{external_id}' is already mapped (mapping {existing_id})"
        )
        self.external_id = external_id
        self.existing_id = existing_id


class ConfigError(GatewayError):
    """The configuration file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"configuration file is invalid: {path}",
            technical_message=f"failed to load {path}: {reason}",
        )
        self.path = path
