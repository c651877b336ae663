"""Conversions for records from the legacy mapper database."""

from __future__ import annotations

import re

TTN_V2_NETWORK_ID = "thethingsnetwork.org"

_HEX_EUI = re.compile(r"[0-9A-Fa-f]{16}")
_DECIMAL = re.compile(r"[+-]?\d+")


def gwaddr_to_net_id_eui(gwaddr: str) -> tuple[str, str, str]:
    """Split a legacy gateway address into (network id, gateway id, gateway EUI)."""
    possible_eui = gwaddr.removeprefix("eui-")
    if _HEX_EUI.fullmatch(possible_eui):
        return TTN_V2_NETWORK_ID, "eui-" + possible_eui.lower(), possible_eui.upper()
    return TTN_V2_NETWORK_ID, gwaddr, ""


def _parse_int(text: str, datarate: str) -> int:
    if not _DECIMAL.fullmatch(text):
        raise ValueError(f"invalid data rate {datarate!r}")
    return int(text)


def datarate_to_sf_bw(datarate: str) -> tuple[int, int]:
    """Parse a data rate like 'SF7BW125' into (spreading factor, bandwidth in Hz)."""
    if datarate == "":
        return 7, 125000
    parts = datarate.split("BW")
    if len(parts) < 2:
        raise ValueError(f"invalid data rate {datarate!r}")
    bandwidth = _parse_int(parts[1], datarate) * 1000
    spreading_factor = _parse_int(parts[0].removeprefix("SF"), datarate)
    return spreading_factor, bandwidth