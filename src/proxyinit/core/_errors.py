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

"""Exception hierarchy shared by the compiler, backend selector and executor."""

from __future__ import annotations

import shlex


class ProxyInitError(Exception):
    """Base class for all errors raised by proxy-init."""


class InvalidPortSpecError(ProxyInitError, ValueError):
    """A port or port-range token could not be parsed."""

    def __init__(self, token: str, msg: str) -> None:
        super().__init__(msg)
        self.token = token


class InvalidPolicyError(ProxyInitError, ValueError):
    """The redirection policy or one of its options is not usable."""


class BackendResolutionError(ProxyInitError):
    """No iptables binary could be found for the requested backend."""

    def __init__(self, candidates: list[str]) -> None:
        super().__init__(
            f'failed to find iptables command; tried: {", ".join(candidates)}'
        )
        self.candidates = list(candidates)


class ExecutionError(ProxyInitError):
    """An external command failed to start or returned a non-zero status."""

    def __init__(
        self,
        argv: list[str],
        returncode: int | None = None,
        output: str = '',
        reason: str = '',
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        if reason:
            detail = reason
        else:
            detail = f'exit status {returncode}'
        msg = f"'{shlex.join(self.argv)}' failed: {detail}"
        if output.strip():
            msg += f': {output.strip()}'
        super().__init__(msg)
