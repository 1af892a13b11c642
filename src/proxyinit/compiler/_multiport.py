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

"""Packing of port lists into ``-m multiport --dports`` groups.

The multiport match accepts at most 15 port references per rule, and a
range ``a:b`` costs two of them regardless of its width.  Groups are filled
greedily in input order so that the generated rules are stable between
runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from proxyinit.core import InvalidPortSpecError, parse_port_range

logger = logging.getLogger(__name__)

MULTIPORT_LIMIT = 15


def _log_invalid(token: str, exc: InvalidPortSpecError) -> None:
    logger.error('invalid port configuration of "%s": %s', token, exc)


def make_multiport_destinations(
    ports: Iterable[str] | None,
    capacity: int = MULTIPORT_LIMIT,
    on_invalid: Callable[[str, InvalidPortSpecError], None] = _log_invalid,
) -> list[list[str]]:
    """Group port/range tokens into multiport destination lists.

    Invalid tokens are reported through *on_invalid* and dropped.  An empty
    input gives no group at all; a non-empty input always ends with the
    group being filled, even if every token was invalid.
    """
    tokens = list(ports or ())
    if not tokens:
        return []

    groups: list[list[str]] = []
    current: list[str] = []
    count = 0
    for token in tokens:
        try:
            port_range = parse_port_range(token)
        except InvalidPortSpecError as e:
            on_invalid(token, e)
            continue

        weight = 1 if port_range.is_single else 2
        if current and count + weight > capacity:
            groups.append(current)
            current = []
            count = 0
        current.append(port_range.as_destination())
        count += weight

    groups.append(current)
    return groups
