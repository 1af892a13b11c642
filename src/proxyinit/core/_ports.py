# Copyright (C) 2026 Linuxfabrik <info@linuxfabrik.ch>
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# On Debian systems, the complete text of the GNU General Public License
# version 2 can be found in /usr/share/common-licenses/GPL-2.
#
# SPDX-License-Identifier: GPL-2.0-or-later

"""TCP port and port-range parsing.

Accepted tokens are a bare port number (``"8080"``) or an inclusive range
(``"4190-4191"``).  Valid ports are 0 to 65535.
"""

from __future__ import annotations

import dataclasses
import re

from ._errors import InvalidPortSpecError

MIN_PORT = 0
MAX_PORT = 65535

_DIGITS_RE = re.compile(r'^[0-9]+$')


@dataclasses.dataclass(frozen=True)
class PortRange:
    """Inclusive port range; a single port has ``lower == upper``."""

    lower: int
    upper: int

    @property
    def is_single(self) -> bool:
        return self.lower == self.upper

    def as_destination(self) -> str:
        """Format for ``-m multiport --dports`` (``n`` or ``lower:upper``)."""
        if self.is_single:
            return str(self.lower)
        return f'{self.lower}:{self.upper}'

    def __str__(self) -> str:
        if self.is_single:
            return str(self.lower)
        return f'{self.lower}-{self.upper}'


def is_valid_port(port: int) -> bool:
    return MIN_PORT <= port <= MAX_PORT


def _to_int(value: str) -> int | None:
    # int() alone would accept '+80', ' 80' and '8_0'
    if not _DIGITS_RE.match(value):
        return None
    return int(value)


def parse_port(token: str) -> int:
    """Parse a single port number, raising ``InvalidPortSpecError``."""
    value = str(token).strip()
    port = _to_int(value)
    if port is None or not is_valid_port(port):
        raise InvalidPortSpecError(token, f'"{token}" is not a valid TCP port')
    return port


def parse_port_range(token: str) -> PortRange:
    """Parse a port or ``<lower>-<upper>`` range token.

    Raises:
        InvalidPortSpecError: the token is malformed, a bound is out of
            range, or the upper bound is below the lower bound.
    """
    value = str(token).strip()

    single = _to_int(value)
    if single is not None:
        if not is_valid_port(single):
            raise InvalidPortSpecError(token, f'"{token}" is not a valid TCP port')
        return PortRange(single, single)

    bounds = value.split('-')
    if len(bounds) != 2:
        raise InvalidPortSpecError(token, 'ranges expected as <lower>-<upper>')

    lower = _to_int(bounds[0])
    if lower is None or not is_valid_port(lower):
        raise InvalidPortSpecError(
            token, f'"{bounds[0]}" is not a valid lower-bound'
        )
    upper = _to_int(bounds[1])
    if upper is None or not is_valid_port(upper):
        raise InvalidPortSpecError(
            token, f'"{bounds[1]}" is not a valid upper-bound'
        )
    if upper < lower:
        raise InvalidPortSpecError(
            token,
            f'"{token}": upper-bound must be greater than or equal to lower-bound',
        )
    return PortRange(lower, upper)
