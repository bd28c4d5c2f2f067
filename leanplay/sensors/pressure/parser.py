"""
Pressure frame parsing

The insole firmware sends one UTF-8 line per frame: four comma-separated
decimal integers, optionally preceded by a label such as ``SensorVal = ``.
Each reading is a signed 32-bit value.
"""

import re
from typing import Optional, Tuple, Union

# Plain ASCII decimal, optional sign; no underscores or other digit scripts
_FIELD_PATTERN = re.compile(r'[+-]?\d+', re.ASCII)

CHANNEL_MIN = -2 ** 31
CHANNEL_MAX = 2 ** 31 - 1


def parse_sample(
        raw: Union[bytes, bytearray, str],
        num_channels: int = 4,
        label_prefix: Optional[str] = None
) -> Optional[Tuple[int, ...]]:
    """
    Decode one pressure frame.

    Args:
        raw:          Frame payload as received from the link
        num_channels: Number of fields a well-formed frame carries
        label_prefix: Label stripped from the start of the frame, if present

    Returns:
        Tuple of channel readings, or None for an undecodable, empty,
        non-numeric, out-of-range or wrong-arity frame.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode('utf-8')
        except UnicodeDecodeError:
            return None
    else:
        text = raw

    text = text.strip()
    if label_prefix and text.startswith(label_prefix.strip()):
        text = text[len(label_prefix.strip()):].strip()
    if not text:
        return None

    fields = text.split(',')
    if len(fields) != num_channels:
        return None

    values = []
    for field in fields:
        field = field.strip()
        if not _FIELD_PATTERN.fullmatch(field):
            return None
        value = int(field)
        if not CHANNEL_MIN <= value <= CHANNEL_MAX:
            return None
        values.append(value)

    return tuple(values)
