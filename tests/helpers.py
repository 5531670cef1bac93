"""Bridge resource builders and ids shared by the gateway tests."""

from unittest.mock import MagicMock


LIGHT_ID = 'light-kitchen'
DEVICE_ID = 'device-kitchen'
ROOM_ID = 'room-living'
GROUPED_ID = 'grouped-living'
SCENE_ID = 'scene-relax'


def light_resource(light_id=LIGHT_ID, on=True, brightness=80.0, mirek=370, owner=DEVICE_ID):
    """A CLIP v2 light resource as returned by GET /resource/light."""
    return {
        'id': light_id,
        'type': 'light',
        'owner': {'rid': owner, 'rtype': 'device'},
        'metadata': {'name': 'Kitchen'},
        'on': {'on': on},
        'dimming': {'brightness': brightness},
        'color_temperature': {'mirek': mirek, 'mirek_valid': True},
        'color': {'xy': {'x': 0.45, 'y': 0.41}},
    }


def grouped_light_resource(grouped_id=GROUPED_ID, owner=ROOM_ID, on=False, brightness=0.0):
    return {
        'id': grouped_id,
        'type': 'grouped_light',
        'owner': {'rid': owner, 'rtype': 'room'},
        'on': {'on': on},
        'dimming': {'brightness': brightness},
    }


def api_response(data, status_code=200, errors=None):
    """Mock requests.Response carrying a v2 envelope."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {'errors': errors or [], 'data': data}
    response.text = str(data)
    return response
