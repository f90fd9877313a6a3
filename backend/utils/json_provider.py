# utils/json_provider.py
from datetime import date, datetime
from uuid import UUID
from flask.json.provider import DefaultJSONProvider

class CustomJSONProvider(DefaultJSONProvider):
    """Custom JSON provider: ISO timestamps, YYYY-MM-DD dates, string UUIDs"""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.strftime('%Y-%m-%d')
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)
