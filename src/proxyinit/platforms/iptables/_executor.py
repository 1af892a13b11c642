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

"""CommandExecutor: runs compiled commands against the host binaries."""

from __future__ import annotations

import dataclasses
import logging
import shlex
import subprocess
from typing import TYPE_CHECKING

from proxyinit.core import ExecutionError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from proxyinit.compiler import Command
    from proxyinit.core import RedirectionPolicy

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ExecutionRecord:
    command: Command
    argv: list[str]
    output: str = ''
    error: ExecutionError | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class CommandExecutor:
    """Execute commands for one policy, one at a time.

    The binary is taken from the policy (the dump binary for dump commands).
    Mutation commands get ``-w`` when the policy asks for the xtables lock
    wait, and everything is wrapped in ``nsenter`` when a network namespace
    is set.  In simulate mode commands are only logged.
    """

    def __init__(
        self,
        policy: RedirectionPolicy,
        trace_id: str = '',
        runner: Callable[..., subprocess.CompletedProcess] | None = None,
    ) -> None:
        self.policy = policy
        self.trace_id = trace_id
        self._runner = runner or subprocess.run

    def wrap(self, argv: list[str]) -> list[str]:
        """Prefix *argv* with ``nsenter`` when a network namespace is set."""
        if self.policy.netns:
            # BusyBox nsenter needs the explicit separator
            return ['nsenter', f'--net={self.policy.netns}', '--', *argv]
        return list(argv)

    def argv_for(self, command: Command) -> list[str]:
        if command.is_dump:
            argv = [self.policy.save_bin_path, *command.args]
        else:
            argv = [self.policy.bin_path, *command.args]
            if self.policy.use_wait_flag:
                argv.append('-w')
        return self.wrap(argv)

    def run_argv(self, argv: list[str]) -> str:
        """Run a fully built argument vector and return its combined output.

        Raises:
            ExecutionError: the process could not be started or exited
                with a non-zero status.
        """
        if self.trace_id:
            logger.info('[%s] :; %s', self.trace_id, shlex.join(argv))
        else:
            logger.info(':; %s', shlex.join(argv))
        if self.policy.simulate:
            return ''

        try:
            proc = self._runner(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ExecutionError(argv, reason=e.strerror or str(e)) from e

        output = proc.stdout or ''
        if output.strip():
            logger.debug('%s', output.rstrip('\n'))
        if proc.returncode != 0:
            raise ExecutionError(argv, returncode=proc.returncode, output=output)
        return output

    def execute(self, command: Command) -> str:
        return self.run_argv(self.argv_for(command))

    def apply(self, commands: Iterable[Command]) -> list[ExecutionRecord]:
        """Execute *commands* in order.

        The first failure is re-raised unless the policy says to continue
        on error, in which case it is logged and recorded.
        """
        if self.policy.use_wait_flag:
            logger.debug('iptables will wait for the xtables lock to become available')

        records = []
        for command in commands:
            record = ExecutionRecord(
                command=command,
                argv=self.argv_for(command),
                skipped=self.policy.simulate,
            )
            try:
                record.output = self.run_argv(record.argv)
            except ExecutionError as e:
                if not self.policy.continue_on_error:
                    raise
                logger.debug('continuing despite error: %s', e)
                record.error = e
            records.append(record)
        return records
