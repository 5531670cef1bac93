"""Controller command parsing.

Loxone sends commands either as JSON payloads or as single lines of text:

    SET <target> ON|OFF
    SET <target> BRI <0-100>
    SET <target> CT <mirek or kelvin>
    SET <target> COLOR <#rrggbb>
    SET <target> SCENE <scene>
    SCENE <scene>
    MOOD <target> <mood number>
    GET <target> STATUS

Keywords are case-insensitive, targets are kept as sent. Parameters are
validated here, so a malformed value fails in the parser instead of turning
into a silent no-op when the command reaches the bridge.
"""

import json
import math
from dataclasses import dataclass, field

from core.errors import InvalidFormat, ParseError
from models.colour import hex_to_xy, parse_hex

KIND_COMMAND = 'command'
KIND_QUERY = 'query'

ACTION_SET = 'set'
ACTION_SCENE = 'scene'
ACTION_MOOD = 'mood'
ACTION_STATUS = 'status'

ACTIONS = (ACTION_SET, ACTION_SCENE, ACTION_MOOD, ACTION_STATUS)

# Colour temperatures above this are treated as Kelvin rather than mirek
KELVIN_THRESHOLD = 1000

# Recognised parameters and the kind of value each one carries
PARAMETER_KINDS = {
    'on': 'bool',
    'brightness': 'number',
    'colorTemperature': 'integer',
    'color': 'colour',
    'sceneId': 'text',
    'moodNumber': 'integer',
}

# Keys used by older Loxone configurations
PARAMETER_ALIASES = {
    'scene_id': 'sceneId',
    'mood_number': 'moodNumber',
    'color_temp': 'colorTemperature',
    'color_temperature': 'colorTemperature',
    'colour': 'color',
}

DEVICE_PARAMETERS = ('on', 'brightness', 'colorTemperature', 'color')


@dataclass(frozen=True)
class Command:
    """A normalised controller command, built per inbound message."""
    kind: str
    target: str
    action: str
    parameters: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'type': self.kind,
            'target': self.target,
            'action': self.action,
            'params': dict(self.parameters),
        }


@dataclass(frozen=True)
class DeviceCommand:
    """State change for a light or grouped light. None means 'leave as is'."""
    on: bool | None = None
    brightness: float | None = None
    color_temperature: int | None = None
    color: tuple[float, float] | None = None

    def is_empty(self) -> bool:
        return (self.on is None and self.brightness is None
                and self.color_temperature is None and self.color is None)

    def to_payload(self) -> dict:
        """Build the CLIP v2 request body for this command."""
        body = {}
        if self.on is not None:
            body['on'] = {'on': self.on}
        if self.brightness is not None:
            body['dimming'] = {'brightness': self.brightness}
        if self.color_temperature is not None:
            body['color_temperature'] = {'mirek': self.color_temperature}
        if self.color is not None:
            body['color'] = {'xy': {'x': self.color[0], 'y': self.color[1]}}
        return body


def kelvin_to_mirek(kelvin: int) -> int:
    """Convert a colour temperature in Kelvin to mirek."""
    return round(1_000_000 / kelvin)


def _coerce_parameter(name: str, value, token: str | None = None) -> bool | int | float | str:
    """Validate a single parameter value against its declared kind.

    Raises:
        ParseError: If the value does not fit the parameter
    """
    kind = PARAMETER_KINDS[name]
    token = str(value) if token is None else token

    if kind == 'bool':
        if isinstance(value, bool):
            return value
        raise ParseError(f"invalid value for {name}: {token}", token)

    if kind == 'number':
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParseError(f"invalid value for {name}: {token}", token)
        number = float(value)
        if math.isnan(number) or not 0 <= number <= 100:
            raise ParseError(f"{name} must be between 0 and 100: {token}", token)
        return number

    if kind == 'integer':
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ParseError(f"invalid value for {name}: {token}", token)
        if name == 'moodNumber' and value < 0:
            raise ParseError(f"mood number must not be negative: {token}", token)
        if name == 'colorTemperature' and value <= 0:
            raise ParseError(f"colour temperature must be positive: {token}", token)
        return value

    if kind == 'colour':
        if not isinstance(value, str):
            raise ParseError(f"invalid colour value: {token}", token)
        try:
            parse_hex(value)
        except InvalidFormat:
            raise ParseError(f"invalid colour value: {token}", token)
        return value

    # text
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"invalid value for {name}: {token}", token)
    return value.strip()


def _parse_number_token(token: str, name: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise ParseError(f"invalid {name} value: {token}", token)


def _parse_integer_token(token: str, name: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise ParseError(f"invalid {name} value: {token}", token)


def _expect_length(tokens: list[str], length: int, what: str):
    if len(tokens) < length:
        raise ParseError(f"{what} requires {length - 1} argument(s)", tokens[-1])
    if len(tokens) > length:
        raise ParseError(f"unexpected token: {tokens[length]}", tokens[length])


def parse_text(line: str) -> Command:
    """Parse a text-grammar command line.

    Raises:
        ParseError: If the line does not match the grammar
    """
    tokens = line.split()
    if not tokens:
        raise ParseError("empty command", '')

    verb = tokens[0].upper()

    if verb == 'SCENE':
        _expect_length(tokens, 2, 'SCENE')
        scene = tokens[1]
        return Command(KIND_COMMAND, scene, ACTION_SCENE, {'sceneId': scene})

    if verb == 'MOOD':
        _expect_length(tokens, 3, 'MOOD')
        mood = _parse_integer_token(tokens[2], 'mood number')
        return Command(KIND_COMMAND, tokens[1], ACTION_MOOD,
                       {'moodNumber': _coerce_parameter('moodNumber', mood, tokens[2])})

    if verb == 'GET':
        _expect_length(tokens, 3, 'GET')
        if tokens[2].upper() != 'STATUS':
            raise ParseError(f"unknown query: {tokens[2]}", tokens[2])
        return Command(KIND_QUERY, tokens[1], ACTION_STATUS)

    if verb != 'SET':
        raise ParseError(f"unknown command type: {tokens[0]}", tokens[0])

    if len(tokens) < 3:
        raise ParseError("SET requires a target and a property", tokens[-1])

    target = tokens[1]
    prop = tokens[2].upper()

    if prop in ('ON', 'OFF'):
        _expect_length(tokens, 3, f"SET {prop}")
        return Command(KIND_COMMAND, target, ACTION_SET, {'on': prop == 'ON'})

    if prop == 'BRI':
        _expect_length(tokens, 4, 'SET BRI')
        brightness = _parse_number_token(tokens[3], 'brightness')
        return Command(KIND_COMMAND, target, ACTION_SET,
                       {'brightness': _coerce_parameter('brightness', brightness, tokens[3])})

    if prop == 'CT':
        _expect_length(tokens, 4, 'SET CT')
        ct = _parse_integer_token(tokens[3], 'colour temperature')
        return Command(KIND_COMMAND, target, ACTION_SET,
                       {'colorTemperature': _coerce_parameter('colorTemperature', ct, tokens[3])})

    if prop == 'COLOR':
        _expect_length(tokens, 4, 'SET COLOR')
        return Command(KIND_COMMAND, target, ACTION_SET,
                       {'color': _coerce_parameter('color', tokens[3])})

    if prop == 'SCENE':
        _expect_length(tokens, 4, 'SET SCENE')
        return Command(KIND_COMMAND, target, ACTION_SCENE, {'sceneId': tokens[3]})

    raise ParseError(f"unknown action: {tokens[2]}", tokens[2])


def parse_payload(data: dict) -> Command:
    """Parse a structured (JSON-decoded) command.

    Expected shape: {"type": "command"|"query", "target": str,
    "action": "set"|"scene"|"mood"|"status", "params": {...}}

    Raises:
        ParseError: If a field is missing or has the wrong type
    """
    if not isinstance(data, dict):
        raise ParseError("command must be an object", str(data))

    kind = str(data.get('type') or KIND_COMMAND).lower()
    if kind not in (KIND_COMMAND, KIND_QUERY):
        raise ParseError(f"unknown command type: {data.get('type')}", str(data.get('type')))

    target = data.get('target')
    if not isinstance(target, str) or not target.strip():
        raise ParseError("target required", str(target))
    target = target.strip()

    action = data.get('action')
    if action is None and kind == KIND_QUERY:
        action = ACTION_STATUS
    if not isinstance(action, str) or action.lower() not in ACTIONS:
        raise ParseError(f"unknown action: {action}", str(action))
    action = action.lower()
    if action == ACTION_STATUS:
        kind = KIND_QUERY

    raw_params = data.get('params') or {}
    if not isinstance(raw_params, dict):
        raise ParseError("params must be an object", str(raw_params))

    parameters = {}
    for key, value in raw_params.items():
        name = PARAMETER_ALIASES.get(key, key)
        if name in PARAMETER_KINDS:
            parameters[name] = _coerce_parameter(name, value)

    if action == ACTION_SET and not any(p in parameters for p in DEVICE_PARAMETERS):
        raise ParseError("set requires at least one of on, brightness, colorTemperature, color", target)
    if action == ACTION_SCENE and 'sceneId' not in parameters:
        raise ParseError("sceneId required", target)
    if action == ACTION_MOOD and 'moodNumber' not in parameters:
        raise ParseError("moodNumber required", target)

    return Command(kind, target, action, parameters)


def parse_message(raw: str | bytes) -> Command:
    """Parse an inbound message, trying JSON first and the text grammar second."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError:
            raise ParseError("message is not valid UTF-8", '')

    text = raw.strip()
    try:
        data = json.loads(text)
    except ValueError:
        return parse_text(text)

    if isinstance(data, dict):
        return parse_payload(data)
    return parse_text(text)


def to_device_command(command: Command) -> DeviceCommand:
    """Map a command's parameters onto a DeviceCommand.

    Colour temperatures above 1000 are taken as Kelvin and converted to
    mirek; colours go through hex_to_xy. Missing parameters stay None.
    """
    params = command.parameters

    ct = params.get('colorTemperature')
    if ct is not None and ct > KELVIN_THRESHOLD:
        ct = kelvin_to_mirek(ct)

    colour = params.get('color')

    return DeviceCommand(
        on=params.get('on'),
        brightness=params.get('brightness'),
        color_temperature=ct,
        color=hex_to_xy(colour) if colour is not None else None,
    )
