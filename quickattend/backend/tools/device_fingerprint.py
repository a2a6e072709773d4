# quickattend/backend/tools/device_fingerprint.py

from typing import Iterator, Union

from pydantic import BaseModel


class DeviceSignals(BaseModel):
    """Browser/environment signals reported by the check-in page."""
    user_agent: str = "unknown"
    language: str = "en"
    screen_resolution: str = "1920x1080"
    color_depth: int = 24
    timezone_offset: int = 0
    hardware_concurrency: Union[int, str] = "unknown"
    platform: str = "unknown"

    def components(self) -> list:
        return [
            self.user_agent,
            self.language,
            self.screen_resolution,
            self.color_depth,
            self.timezone_offset,
            self.hardware_concurrency,
            self.platform,
        ]


def _utf16_units(text: str) -> Iterator[int]:
    # Browsers hash UTF-16 code units, so astral characters count twice.
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        yield raw[i] | (raw[i + 1] << 8)


def generate_device_id(signals: DeviceSignals) -> str:
    """
    Derives a coarse device identifier such as 'DEV-1A2B3C4D'.

    The signals are joined with '|' and folded with a 32-bit rolling hash
    (h * 31 + unit). It separates browsers well enough to flag duplicate
    check-ins and is not meant to resist tampering.
    """
    text = "|".join(str(part) for part in signals.components())
    value = 0
    for unit in _utf16_units(text):
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return "DEV-" + format(abs(value), "X").zfill(8)
