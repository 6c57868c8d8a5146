"""Wrappers of the `json` module that round-trip timezone-aware `datetime` objects.

The state files shared between CLI invocations store timestamps. They are
encoded as milliseconds since the epoch so that every process reads back the
same instant regardless of its local timezone.

Example::

    >>> from datetime import datetime, timezone
    >>> dumps({'updated_at': datetime(2024, 7, 3, 16, 22, 6, tzinfo=timezone.utc)})
    '{"updated_at": {"$date": 1720023726000}}'
    >>> loads(_)
    {'updated_at': datetime.datetime(2024, 7, 3, 16, 22, 6, tzinfo=datetime.timezone.utc)}

"""
from datetime import datetime, timedelta, timezone
import json

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class JSONEncoder(json.JSONEncoder):
    """Encode `datetime` as ``{"$date": number[Total milliseconds since EPOCH]}``.

    Naive datetimes are assumed to be in UTC.

    """
    def default(self, obj):
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                obj = obj.replace(tzinfo=timezone.utc)
            return {'$date': (obj - EPOCH) // timedelta(milliseconds=1)}
        return super().default(obj)


def object_hook(obj: dict):
    """Turn ``{"$date": ...}`` objects back into UTC `datetime` objects."""
    if len(obj) == 1 and '$date' in obj and isinstance(obj['$date'], int):
        return EPOCH + timedelta(milliseconds=obj['$date'])
    return obj


def dump(obj, fp, **kwargs):
    return json.dump(obj, fp, cls=JSONEncoder, **kwargs)


def dumps(obj, **kwargs) -> str:
    return json.dumps(obj, cls=JSONEncoder, **kwargs)


def loads(obj: str | bytes | bytearray, **kwargs):
    return json.loads(obj, object_hook=object_hook, **kwargs)
