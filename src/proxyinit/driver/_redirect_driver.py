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

"""RedirectionDriver: one configure or cleanup run for one address family.

A run dumps the nat table, compiles the policy against that dump, applies
the resulting commands one by one and finally dumps the table again for
the log.  Only the first dump is mandatory; the closing one is best
effort.
"""

from __future__ import annotations

import dataclasses
import logging
import subprocess
import time
from typing import TYPE_CHECKING

from proxyinit.compiler import CompileResult, RedirectionCompiler, make_dump
from proxyinit.core import BackendResolutionError, ExecutionError, ProxyInitError
from proxyinit.core.options import BackendMode
from proxyinit.platforms.iptables import (
    BackendSelection,
    CommandExecutor,
    ExecutionRecord,
    resolve_bin_fallback,
    select_backend,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from proxyinit.core import RedirectionPolicy

logger = logging.getLogger(__name__)

CLOSE_WAIT_SYSCTL = 'net.netfilter.nf_conntrack_tcp_timeout_close_wait'


def new_trace_id() -> str:
    """Identifier of one run, stamped into rule comments."""
    return str(int(time.time()))


@dataclasses.dataclass
class RunReport:
    family: str
    trace_id: str
    bin_path: str
    save_bin_path: str
    initial_rules: str = ''
    result: CompileResult | None = None
    records: list[ExecutionRecord] = dataclasses.field(default_factory=list)
    final_rules: str = ''
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def errors(self) -> list[ExecutionError]:
        return [r.error for r in self.records if r.error is not None]


def resolve_policy_backend(
    policy: RedirectionPolicy,
    requested: str = BackendMode.LEGACY,
    explicit: bool = False,
    runner: Callable[..., subprocess.CompletedProcess] | None = None,
    look_path: Callable[[str], str | None] | None = None,
) -> tuple[RedirectionPolicy, BackendSelection]:
    """Settle the binaries *policy* runs with.

    With *explicit* the policy's binaries are used as given.  Otherwise the
    backend in use is detected through the policy's executor, so probes
    honour the network namespace and simulate mode.  ``auto`` takes the
    detected backend; ``legacy``, ``nft`` and ``plain`` are honoured and a
    mismatch with the detected backend is logged.
    """
    if explicit:
        selection = select_backend(
            None,
            look_path,
            ipv6=policy.ipv6,
            bin_path=policy.bin_path,
            save_bin_path=policy.save_bin_path,
        )
        return policy, selection

    mode = BackendMode(requested)
    executor = CommandExecutor(policy, runner=runner)

    def run_save(argv: list[str]) -> str:
        return executor.run_argv(executor.wrap(argv))

    try:
        selection = select_backend(run_save, look_path, ipv6=policy.ipv6, requested=mode)
    except BackendResolutionError as e:
        if mode == BackendMode.AUTO:
            raise
        logger.warning('cannot detect the iptables backend (%s); using %s', e, policy.bin_path)
        return policy, BackendSelection(
            mode=mode, bin_path=policy.bin_path, save_bin_path=policy.save_bin_path
        )
    return policy.with_binaries(selection.bin_path, selection.save_bin_path), selection


class RedirectionDriver:
    """Configure or clean up the NAT redirection for one policy."""

    def __init__(
        self,
        policy: RedirectionPolicy,
        trace_id: str | None = None,
        runner: Callable[..., subprocess.CompletedProcess] | None = None,
        look_path: Callable[[str], str | None] | None = None,
    ) -> None:
        self.policy = policy
        self.trace_id = trace_id or new_trace_id()
        self._runner = runner or subprocess.run
        self._look_path = look_path

    def _resolved_policy(self) -> RedirectionPolicy:
        bin_path, save_bin_path = resolve_bin_fallback(
            self.policy.bin_path, self.policy.save_bin_path, self._look_path
        )
        return self.policy.with_binaries(bin_path, save_bin_path)

    def _executor(self, policy: RedirectionPolicy) -> CommandExecutor:
        return CommandExecutor(policy, trace_id=self.trace_id, runner=self._runner)

    def _report(self, policy: RedirectionPolicy) -> RunReport:
        return RunReport(
            family=policy.family,
            trace_id=self.trace_id,
            bin_path=policy.bin_path,
            save_bin_path=policy.save_bin_path,
        )

    def _final_dump(self, executor: CommandExecutor) -> str:
        try:
            return executor.execute(make_dump())
        except ExecutionError as e:
            logger.warning('could not list the resulting rules: %s', e)
            return ''

    def plan(self, existing_rules: str = '') -> CompileResult:
        """Compile against *existing_rules* without touching the host."""
        return RedirectionCompiler(self.policy, self.trace_id).compile(existing_rules)

    def configure(self) -> RunReport:
        policy = self._resolved_policy()
        logger.debug('tracing script execution as [%s]', self.trace_id)
        executor = self._executor(policy)
        report = self._report(policy)

        try:
            report.initial_rules = executor.execute(make_dump())
        except ExecutionError:
            logger.error('aborting firewall configuration')
            raise

        compiler = RedirectionCompiler(policy, self.trace_id)
        report.result = compiler.compile(report.initial_rules)
        report.warnings = report.result.warnings
        report.records = executor.apply(report.result.commands)
        report.final_rules = self._final_dump(executor)
        return report

    def cleanup(self) -> RunReport:
        policy = self._resolved_policy()
        logger.debug('tracing script execution as [%s]', self.trace_id)
        logger.debug('using "%s" to clean up firewall rules', policy.bin_path)
        logger.debug('using "%s" to list all available rules', policy.save_bin_path)
        executor = self._executor(policy)
        report = self._report(policy)

        compiler = RedirectionCompiler(policy, self.trace_id)
        report.records = executor.apply(compiler.teardown())
        report.final_rules = self._final_dump(executor)
        return report


def _run_dual_stack(
    v4: RedirectionDriver,
    v6: RedirectionDriver | None,
    action: str,
) -> list[RunReport]:
    reports = [getattr(v4, action)()]
    if v6 is None:
        return reports
    try:
        reports.append(getattr(v6, action)())
    except BackendResolutionError:
        raise
    except ProxyInitError as e:
        logger.warning('ignoring failure of the ipv6 %s run: %s', action, e)
    return reports


def configure_dual_stack(
    v4: RedirectionDriver, v6: RedirectionDriver | None = None
) -> list[RunReport]:
    """Configure IPv4, then IPv6 when given.

    A failing IPv6 run does not fail the whole operation once IPv4 is in
    place; only a missing ip6tables binary does.
    """
    return _run_dual_stack(v4, v6, 'configure')


def cleanup_dual_stack(
    v4: RedirectionDriver, v6: RedirectionDriver | None = None
) -> list[RunReport]:
    return _run_dual_stack(v4, v6, 'cleanup')


def set_close_wait_timeout(
    seconds: int,
    simulate: bool = False,
    runner: Callable[..., subprocess.CompletedProcess] | None = None,
) -> str:
    """Set the conntrack CLOSE_WAIT timeout via sysctl.

    Raises:
        ExecutionError: sysctl could not be run or failed.
    """
    argv = ['sysctl', '-w', f'{CLOSE_WAIT_SYSCTL}={seconds}']
    logger.info(':; %s', ' '.join(argv))
    if simulate:
        return ''
    runner = runner or subprocess.run
    try:
        proc = runner(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as e:
        raise ExecutionError(argv, reason=e.strerror or str(e)) from e
    output = proc.stdout or ''
    if proc.returncode != 0:
        logger.error('%s', output.rstrip('\n'))
        raise ExecutionError(argv, returncode=proc.returncode, output=output)
    logger.info('%s', output.rstrip('\n'))
    return output
