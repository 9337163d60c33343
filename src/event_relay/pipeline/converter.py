"""Remote event → outbound envelope conversion."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from xml.etree import ElementTree as ET

from event_relay.config.models import PayloadEncoding
from event_relay.sources.base import RemoteEvent

# unstable event API version suffix
EVENT_TYPE_FORMAT = "com.eventrelay.history.{type}.v0"
# extension attributes for filtering on API version / event class
EXT_EVENT_CLASS = "eventclass"
EXT_API_VERSION = "sourceapiversion"

_XML_NAME = re.compile(r"^[A-Za-z_][\w.\-]*$")


class ConversionError(Exception):
    """Raised when an event payload cannot be encoded."""


@dataclass(frozen=True, slots=True)
class Envelope:
    """CloudEvents-shaped record sent to the sink. Never persisted."""

    id: str
    source: str
    type: str
    time: datetime
    data_content_type: str
    data: bytes
    extensions: dict[str, str] = field(default_factory=dict)
    spec_version: str = "1.0"


def convert_event(
    event: RemoteEvent,
    source: str,
    api_version: str,
    encoding: PayloadEncoding | str = PayloadEncoding.JSON,
) -> Envelope:
    """Map *event* to exactly one envelope.

    Only payload encoding can fail; the error is raised as ConversionError
    and never retried here.
    """
    return Envelope(
        id=str(event.key),
        source=source,
        type=EVENT_TYPE_FORMAT.format(type=event.event_type),
        time=event.created_time,
        data_content_type=str(encoding),
        data=encode_payload(event, encoding),
        extensions={
            EXT_EVENT_CLASS: event.event_class,
            EXT_API_VERSION: api_version,
        },
    )


def encode_payload(event: RemoteEvent, encoding: PayloadEncoding | str) -> bytes:
    try:
        encoding = PayloadEncoding(encoding)
    except ValueError as exc:
        msg = f"Unsupported payload encoding: {encoding}"
        raise ConversionError(msg) from exc

    if encoding == PayloadEncoding.JSON:
        try:
            return json.dumps(
                dict(event.payload), default=_json_default, allow_nan=False
            ).encode()
        except (TypeError, ValueError) as exc:
            msg = f"Event {event.key}: payload is not JSON serializable: {exc}"
            raise ConversionError(msg) from exc

    root = ET.Element(event.event_type if _XML_NAME.match(event.event_type) else "Event")
    root.set("key", str(event.key))
    _fill_xml(root, event.payload, event.key)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _fill_xml(parent: ET.Element, value: Any, key: int) -> None:
    if isinstance(value, Mapping):
        for name, child in value.items():
            if not isinstance(name, str) or not _XML_NAME.match(name):
                msg = f"Event {key}: '{name}' is not a valid XML element name"
                raise ConversionError(msg)
            _fill_xml(ET.SubElement(parent, name), child, key)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _fill_xml(ET.SubElement(parent, "item"), item, key)
    elif value is None:
        return
    elif isinstance(value, bool):
        parent.text = "true" if value else "false"
    elif isinstance(value, datetime):
        parent.text = value.isoformat()
    elif isinstance(value, (str, int, float)):
        parent.text = str(value)
    else:
        msg = f"Event {key}: cannot encode {type(value).__name__} as XML"
        raise ConversionError(msg)
