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

"""Tests for configure/cleanup runs, dual-stack handling and sysctl."""

import pytest

from proxyinit.core import BackendResolutionError, ExecutionError
from proxyinit.core.options import BackendMode
from proxyinit.driver import (
    RedirectionDriver,
    cleanup_dual_stack,
    configure_dual_stack,
    new_trace_id,
    resolve_policy_backend,
    set_close_wait_timeout,
)

INSTALLED_DUMP = """\
*nat
:PROXY_INIT_OUTPUT - [0:0]
:PROXY_INIT_REDIRECT - [0:0]
-A PREROUTING -m comment --comment "proxy-init/install-proxy-init-prerouting" -j PROXY_INIT_REDIRECT
-A OUTPUT -m comment --comment "proxy-init/install-proxy-init-output" -j PROXY_INIT_OUTPUT
COMMIT
"""


def test_new_trace_id_is_numeric():
    assert new_trace_id().isdigit()


class TestConfigure:
    def test_dump_compile_apply_dump(self, make_policy, runner, look_path):
        driver = RedirectionDriver(make_policy(), trace_id='42', runner=runner, look_path=look_path)
        report = driver.configure()

        assert runner.calls[0] == ['iptables-save', '-t', 'nat']
        assert runner.calls[-1] == ['iptables-save', '-t', 'nat']
        assert len(runner.calls) == len(report.result.commands) + 2
        assert report.trace_id == '42'
        assert report.family == 'ipv4'
        assert report.errors == []

    def test_second_run_sees_installed_rules(self, make_policy, make_runner, look_path):
        runner = make_runner({'iptables-save': (0, INSTALLED_DUMP)})
        driver = RedirectionDriver(make_policy(), runner=runner, look_path=look_path)
        report = driver.configure()
        assert report.initial_rules == INSTALLED_DUMP
        assert report.result.inbound_jump_exists
        assert not any(c.tag.startswith('install-') for c in report.result.commands)

    def test_failing_initial_dump_aborts(self, make_policy, make_runner, look_path):
        runner = make_runner({'iptables-save': (1, 'permission denied')})
        driver = RedirectionDriver(make_policy(), runner=runner, look_path=look_path)
        with pytest.raises(ExecutionError):
            driver.configure()
        assert len(runner.calls) == 1

    def test_failing_final_dump_is_tolerated(self, make_policy, make_runner, look_path):
        class Runner(make_runner):
            def __call__(self, argv, **kwargs):
                proc = super().__call__(argv, **kwargs)
                if argv[0] == 'iptables-save' and len(self.calls) > 1:
                    proc.returncode = 1
                return proc

        runner = Runner()
        report = RedirectionDriver(make_policy(), runner=runner, look_path=look_path).configure()
        assert report.final_rules == ''

    def test_fallback_binaries_are_used(self, make_policy, runner, make_look_path):
        look_path = make_look_path(['iptables-nft', 'iptables-nft-save'])
        policy = make_policy(bin_path='iptables-legacy', save_bin_path='iptables-legacy-save')
        report = RedirectionDriver(policy, runner=runner, look_path=look_path).configure()
        assert report.bin_path == 'iptables-nft'
        assert runner.calls[0] == ['iptables-nft-save', '-t', 'nat']
        assert runner.calls[1][0] == 'iptables-nft'

    def test_simulate_runs_nothing(self, make_policy, runner, look_path):
        report = RedirectionDriver(
            make_policy(simulate=True), runner=runner, look_path=look_path
        ).configure()
        assert runner.calls == []
        assert report.result.commands
        assert all(r.skipped for r in report.records)

    def test_plan_does_not_touch_the_host(self, make_policy, runner, look_path):
        driver = RedirectionDriver(make_policy(), trace_id='7', runner=runner, look_path=look_path)
        result = driver.plan(INSTALLED_DUMP)
        assert runner.calls == []
        assert result.outbound_jump_exists


class TestCleanup:
    def test_teardown_then_dump(self, make_policy, runner, look_path):
        report = RedirectionDriver(make_policy(), runner=runner, look_path=look_path).cleanup()
        assert [call[3:5] for call in runner.calls[:6]] == [
            ['-D', 'PREROUTING'],
            ['-D', 'OUTPUT'],
            ['-F', 'PROXY_INIT_OUTPUT'],
            ['-F', 'PROXY_INIT_REDIRECT'],
            ['-X', 'PROXY_INIT_OUTPUT'],
            ['-X', 'PROXY_INIT_REDIRECT'],
        ]
        assert runner.calls[-1] == ['iptables-save', '-t', 'nat']
        assert report.result is None

    def test_continue_on_error_collects_failures(self, make_policy, make_runner, look_path):
        runner = make_runner({'iptables': (1, 'No chain/target/match by that name.')})
        policy = make_policy(continue_on_error=True)
        report = RedirectionDriver(policy, runner=runner, look_path=look_path).cleanup()
        assert len(report.errors) == 6
        assert len(runner.calls) == 7


class _Driver:
    def __init__(self, family, error=None):
        self.family = family
        self.error = error
        self.calls = []

    def configure(self):
        self.calls.append('configure')
        if self.error:
            raise self.error
        return self.family

    def cleanup(self):
        self.calls.append('cleanup')
        if self.error:
            raise self.error
        return self.family


class TestDualStack:
    def test_both_families(self):
        v4, v6 = _Driver('ipv4'), _Driver('ipv6')
        assert configure_dual_stack(v4, v6) == ['ipv4', 'ipv6']

    def test_ipv4_only(self):
        assert configure_dual_stack(_Driver('ipv4')) == ['ipv4']

    def test_ipv6_failure_is_ignored(self, caplog):
        v6 = _Driver('ipv6', ExecutionError(['ip6tables-save'], 1))
        assert configure_dual_stack(_Driver('ipv4'), v6) == ['ipv4']
        assert 'ignoring failure of the ipv6 configure run' in caplog.text

    def test_ipv4_failure_is_fatal(self):
        v4 = _Driver('ipv4', ExecutionError(['iptables-save'], 1))
        v6 = _Driver('ipv6')
        with pytest.raises(ExecutionError):
            configure_dual_stack(v4, v6)
        assert v6.calls == []

    def test_ipv6_backend_resolution_is_fatal(self):
        v6 = _Driver('ipv6', BackendResolutionError(['ip6tables-nft-save', 'ip6tables-save']))
        with pytest.raises(BackendResolutionError):
            cleanup_dual_stack(_Driver('ipv4'), v6)

    def test_cleanup_runs_cleanup(self):
        v4, v6 = _Driver('ipv4'), _Driver('ipv6')
        cleanup_dual_stack(v4, v6)
        assert v4.calls == ['cleanup']
        assert v6.calls == ['cleanup']


class TestResolvePolicyBackend:
    def test_requested_mode_matches_detection(self, make_policy, runner, look_path):
        policy = make_policy(bin_path='iptables-legacy', save_bin_path='iptables-legacy-save')
        resolved, selection = resolve_policy_backend(
            policy, BackendMode.LEGACY, runner=runner, look_path=look_path
        )
        assert resolved == policy
        assert selection.mode == BackendMode.LEGACY
        assert selection.detected == BackendMode.LEGACY
        assert runner.calls[0] == ['iptables-nft-save', '-t', 'mangle']

    def test_requested_mode_is_honoured_on_mismatch(self, make_policy, make_runner, look_path, caplog):
        runner = make_runner(
            {('iptables-nft-save', '-t', 'mangle'): (0, ':KUBE-IPTABLES-HINT - [0:0]\n')}
        )
        resolved, selection = resolve_policy_backend(
            make_policy(), BackendMode.LEGACY, runner=runner, look_path=look_path
        )
        assert selection.mode == BackendMode.LEGACY
        assert selection.detected == BackendMode.NFT
        assert resolved.bin_path == 'iptables-legacy'
        assert 'does not match the detected backend "nft"' in caplog.text

    def test_requested_mode_without_probe_binaries(self, make_policy, runner, make_look_path, caplog):
        look_path = make_look_path(['iptables-legacy', 'iptables-legacy-save'])
        policy = make_policy(bin_path='iptables-legacy', save_bin_path='iptables-legacy-save')
        resolved, selection = resolve_policy_backend(
            policy, BackendMode.LEGACY, runner=runner, look_path=look_path
        )
        assert resolved == policy
        assert selection.detected is None
        assert runner.calls == []
        assert 'cannot detect the iptables backend' in caplog.text

    def test_auto_without_probe_binaries_fails(self, make_policy, runner, make_look_path):
        with pytest.raises(BackendResolutionError):
            resolve_policy_backend(
                make_policy(), BackendMode.AUTO, runner=runner, look_path=make_look_path([])
            )

    def test_auto_detects(self, make_policy, make_runner, look_path):
        runner = make_runner(
            {('iptables-nft-save', '-t', 'mangle'): (0, ':KUBE-IPTABLES-HINT - [0:0]\n')}
        )
        resolved, selection = resolve_policy_backend(
            make_policy(), BackendMode.AUTO, runner=runner, look_path=look_path
        )
        assert selection.detected == BackendMode.NFT
        assert (resolved.bin_path, resolved.save_bin_path) == ('iptables-nft', 'iptables-nft-save')

    def test_auto_probes_inside_netns(self, make_policy, runner, look_path):
        resolve_policy_backend(
            make_policy(netns='/proc/1/ns/net'), BackendMode.AUTO, runner=runner, look_path=look_path
        )
        assert runner.calls[0] == [
            'nsenter', '--net=/proc/1/ns/net', '--', 'iptables-nft-save', '-t', 'mangle',
        ]  # fmt: skip

    def test_explicit(self, make_policy, runner, look_path):
        policy = make_policy(bin_path='/opt/iptables', save_bin_path='/opt/iptables-save')
        resolved, selection = resolve_policy_backend(
            policy, BackendMode.AUTO, explicit=True, runner=runner, look_path=look_path
        )
        assert resolved == policy
        assert selection.mode == BackendMode.EXPLICIT
        assert runner.calls == []


class TestCloseWaitTimeout:
    def test_runs_sysctl(self, make_runner):
        runner = make_runner({'sysctl': (0, 'net.netfilter.nf_conntrack_tcp_timeout_close_wait = 3600\n')})
        output = set_close_wait_timeout(3600, runner=runner)
        assert runner.calls == [
            ['sysctl', '-w', 'net.netfilter.nf_conntrack_tcp_timeout_close_wait=3600']
        ]
        assert '3600' in output

    def test_simulate(self, runner):
        assert set_close_wait_timeout(3600, simulate=True, runner=runner) == ''
        assert runner.calls == []

    def test_failure(self, make_runner):
        runner = make_runner({'sysctl': (255, 'sysctl: permission denied')})
        with pytest.raises(ExecutionError, match='permission denied'):
            set_close_wait_timeout(60, runner=runner)
