import copy
import json
from typing import Any, Dict

from fastcrud import constants

GLOBAL = "global"

# Action settings override the global section
#   find_field: column used to find records (read, update, delete, restore)
#   find_field_is_uuid: validate identifiers as UUIDs before querying
#   method: record method used for serialization
#   per_page: default page size
DEFAULTS = {
    GLOBAL: {
        "find_field": "id",
        "find_field_is_uuid": False,
    },
    "create": {"method": "to_dict"},
    "read": {"method": "to_dict"},
    "update": {"method": "to_dict"},
    "delete": {"http_status": 200},
    "soft_delete": {"deleted_at_field": "deleted_at", "deleted_by_field": "deleted_by"},
    "restore": {"method": "to_dict", "http_status": 200},
    "search": {"method": "to_dict", "per_page": constants.DEFAULT_PER_PAGE},
    "options": {"default_value": "id"},
    "export_csv": {"method": "to_dict", "per_page": constants.EXPORT_PER_PAGE},
}


class Config:
    def __init__(self, overrides: Dict[str, Dict[str, Any]] = None) -> None:
        self._settings = copy.deepcopy(DEFAULTS)
        for section, values in (overrides or {}).items():
            self._settings.setdefault(section, {}).update(values)

    @classmethod
    def from_file(cls, path: str) -> "Config":
        with open(path) as f:
            return cls(json.load(f))

    def get(self, action: str, key: str, default: Any = None) -> Any:
        """Reads an action setting, falling back to the global setting"""
        value = self._settings.get(action, {}).get(key)
        if value is None:
            value = self._settings[GLOBAL].get(key)
        return default if value is None else value
