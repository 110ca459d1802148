"""Plain-data rendering of properties for JSON and YAML output.

Values are mapped to JSON-compatible types: GUIDs and dates become
strings, blobs become hex strings, decimals become strings so no
precision is lost, and clip data becomes a small dict.

Usage
-----
::

    from propvar.property.serializer import PropertySerializer

    serializer = PropertySerializer()
    text = serializer.to_json(store.properties())
"""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import yaml

from propvar.property.model import Property
from propvar.types.clipdata import ClipData


class PropertySerializer:

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def value_to_data(self, value: Any) -> Any:
        """Return ``value`` as JSON-compatible plain data."""
        if value is None or isinstance(value, (bool, str)):
            return value
        if isinstance(value, int):
            return int(value)
        if isinstance(value, float):
            return float(value)
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, UUID):
            return "{" + str(value) + "}"
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).hex()
        if isinstance(value, ClipData):
            return self._clipdata_to_data(value)
        if isinstance(value, list):
            return [self.value_to_data(item) for item in value]
        return repr(value)

    def _clipdata_to_data(self, clip: ClipData) -> dict[str, Any]:
        data: dict[str, Any] = {"data": clip.data.hex()}
        if clip.fmtid is not None:
            data["fmtid"] = "{" + str(clip.fmtid) + "}"
        elif clip.name is not None:
            data["name"] = clip.name
        elif clip.format:
            data["format"] = clip.format
            if clip.mac:
                data["mac"] = True
        return data

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def property_to_dict(self, prop: Property) -> dict[str, Any]:
        data: dict[str, Any] = {"fmtid": "{" + str(prop.fmtid) + "}"}
        if prop.name is not None:
            data["name"] = prop.name
        else:
            data["id"] = prop.id
        data["type"] = str(prop.type)
        data["value"] = self.value_to_data(prop.value)
        return data

    def to_list(self, properties: list[Property]) -> list[dict[str, Any]]:
        return [self.property_to_dict(prop) for prop in properties]

    # ------------------------------------------------------------------
    # JSON / YAML
    # ------------------------------------------------------------------

    def to_json(self, properties: list[Property], indent: int = 2) -> str:
        """Serialize properties to a JSON array."""
        return json.dumps(self.to_list(properties), indent=indent, ensure_ascii=False)

    def to_yaml(self, properties: list[Property]) -> str:
        """Serialize properties to a YAML sequence."""
        return yaml.dump(self.to_list(properties), default_flow_style=False, allow_unicode=True)
