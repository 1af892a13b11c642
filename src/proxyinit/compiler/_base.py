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

"""BaseCompiler: warning tracking for the rule compiler."""

from __future__ import annotations

import logging
from enum import IntEnum

logger = logging.getLogger(__name__)


class CompilerStatus(IntEnum):
    """Compiler exit status codes."""

    SUCCESS = 0
    WARNING = 1


class BaseCompiler:
    """Base class collecting warnings raised while compiling.

    Messages are logged as they are recorded and kept so callers can report
    them after the run.
    """

    def __init__(self) -> None:
        self._status: CompilerStatus = CompilerStatus.SUCCESS
        self._warnings: list[str] = []

    @property
    def status(self) -> CompilerStatus:
        return self._status

    def warning(self, msg: str) -> None:
        """Record a warning."""
        logger.warning(msg)
        self._warnings.append(msg)
        self._status = CompilerStatus.WARNING

    def get_warnings(self) -> list[str]:
        return list(self._warnings)

    def reset(self) -> None:
        self._status = CompilerStatus.SUCCESS
        self._warnings.clear()
