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

"""Unit tests for building and validating redirection policies."""

import pytest

from proxyinit.core import InvalidPolicyError, build_policy, default_binaries
from proxyinit.core.options import PROXY_INIT_DEFAULTS, ProxyInitOption, RedirectMode


@pytest.fixture
def options():
    opts = PROXY_INIT_DEFAULTS.as_options()
    opts[ProxyInitOption.INCOMING_PROXY_PORT] = 4143
    opts[ProxyInitOption.OUTGOING_PROXY_PORT] = 4140
    return opts


class TestDefaultBinaries:
    @pytest.mark.parametrize(
        ('mode', 'ipv6', 'expected'),
        [
            ('legacy', False, ('iptables-legacy', 'iptables-legacy-save')),
            ('legacy', True, ('ip6tables-legacy', 'ip6tables-legacy-save')),
            ('nft', False, ('iptables-nft', 'iptables-nft-save')),
            ('nft', True, ('ip6tables-nft', 'ip6tables-nft-save')),
            ('plain', False, ('iptables', 'iptables-save')),
            ('auto', True, ('ip6tables', 'ip6tables-save')),
        ],
    )
    def test_names(self, mode, ipv6, expected):
        assert default_binaries(mode, ipv6) == expected

    def test_unknown_mode(self):
        with pytest.raises(InvalidPolicyError, match='valid values are only'):
            default_binaries('xtables', False)


class TestBuildPolicy:
    def test_defaults(self, options):
        policy = build_policy(options)
        assert policy.proxy_inbound_port == 4143
        assert policy.proxy_outbound_port == 4140
        assert policy.mode == RedirectMode.REDIRECT_ALL
        assert policy.bin_path == 'iptables-legacy'
        assert policy.save_bin_path == 'iptables-legacy-save'
        assert policy.family == 'ipv4'

    @pytest.mark.parametrize(
        'option', [ProxyInitOption.INCOMING_PROXY_PORT, ProxyInitOption.OUTGOING_PROXY_PORT]
    )
    @pytest.mark.parametrize('value', [-1, 65536, 'abc'])
    def test_invalid_proxy_port(self, options, option, value):
        options[option] = value
        with pytest.raises(InvalidPolicyError, match=f'--{option} must be a valid TCP port number'):
            build_policy(options)

    @pytest.mark.parametrize('value', ['+4143', '4_143', True])
    def test_proxy_port_must_be_plain_digits(self, options, value):
        options[ProxyInitOption.INCOMING_PROXY_PORT] = value
        with pytest.raises(InvalidPolicyError, match='--incoming-proxy-port must be a valid TCP port number'):
            build_policy(options)

    def test_proxy_port_from_string(self, options):
        options[ProxyInitOption.OUTGOING_PROXY_PORT] = '4140'
        assert build_policy(options).proxy_outbound_port == 4140

    def test_listed_mode(self, options):
        options[ProxyInitOption.PORTS_TO_REDIRECT] = ['8080', '80']
        policy = build_policy(options)
        assert policy.mode == RedirectMode.REDIRECT_LISTED
        assert policy.ports_to_redirect == (8080, 80)

    def test_invalid_port_to_redirect(self, options):
        options[ProxyInitOption.PORTS_TO_REDIRECT] = ['8080', '99999']
        with pytest.raises(InvalidPolicyError, match='"99999" is not a valid port to redirect'):
            build_policy(options)

    def test_subnets_are_trimmed(self, options):
        options[ProxyInitOption.SUBNETS_TO_IGNORE] = [' 10.0.0.0/8 ', '192.168.1.0/24']
        assert build_policy(options).subnets_to_ignore == ('10.0.0.0/8', '192.168.1.0/24')

    def test_invalid_subnet(self, options):
        options[ProxyInitOption.SUBNETS_TO_IGNORE] = ['1.1.1.1/33']
        with pytest.raises(InvalidPolicyError, match='1.1.1.1/33 is not a valid CIDR address'):
            build_policy(options)

    def test_subnets_follow_the_family(self, options):
        options[ProxyInitOption.SUBNETS_TO_IGNORE] = ['10.0.0.0/8', 'fd00::/8']
        assert build_policy(options).subnets_to_ignore == ('10.0.0.0/8',)
        assert build_policy(options, ipv6=True).subnets_to_ignore == ('fd00::/8',)

    def test_unknown_iptables_mode(self, options):
        options[ProxyInitOption.IPTABLES_MODE] = 'xtables'
        with pytest.raises(InvalidPolicyError, match='--iptables-mode'):
            build_policy(options)

    def test_explicit_binaries(self, options):
        options[ProxyInitOption.FIREWALL_BIN_PATH] = '/opt/iptables'
        options[ProxyInitOption.FIREWALL_SAVE_BIN_PATH] = '/opt/iptables-save'
        policy = build_policy(options)
        assert (policy.bin_path, policy.save_bin_path) == ('/opt/iptables', '/opt/iptables-save')

    def test_explicit_binaries_must_be_paired(self, options):
        options[ProxyInitOption.FIREWALL_SAVE_BIN_PATH] = '/opt/iptables-save'
        with pytest.raises(InvalidPolicyError, match='must be given together'):
            build_policy(options)

    def test_ipv6_policy(self, options):
        options[ProxyInitOption.IPTABLES_MODE] = 'nft'
        policy = build_policy(options, ipv6=True)
        assert policy.ipv6
        assert policy.bin_path == 'ip6tables-nft'
        assert policy.loopback_network == '::1/128'

    def test_with_binaries_returns_copy(self, options):
        policy = build_policy(options)
        other = policy.with_binaries('iptables-nft', 'iptables-nft-save')
        assert policy.bin_path == 'iptables-legacy'
        assert other.bin_path == 'iptables-nft'
        assert other.proxy_inbound_port == policy.proxy_inbound_port
