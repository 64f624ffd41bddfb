"""Telemetry data models."""

from typing import Union

TELEMETRY_TOPIC = "v1/devices/me/telemetry"

Scalar = Union[str, int, float, bool, None]
SignalValue = Union[Scalar, list[Scalar]]

# Insertion order is significant: it decides top-N selection.
DataPoint = dict[str, SignalValue]
Trace = list[DataPoint]
