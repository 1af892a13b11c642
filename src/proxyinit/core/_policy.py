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

"""RedirectionPolicy: the fully resolved input of one compile/install run.

A policy covers exactly one address family.  Dual-stack operation builds two
policies from the same options (see ``build_policy``).
"""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
from collections.abc import Mapping

from ._errors import InvalidPolicyError, InvalidPortSpecError
from ._ports import parse_port
from .options import BackendMode, ProxyInitOption, RedirectMode

logger = logging.getLogger(__name__)

# Static binary names per backend mode, before any detection or fallback.
_DEFAULT_BINARIES = {
    BackendMode.LEGACY: ('{prefix}-legacy', '{prefix}-legacy-save'),
    BackendMode.NFT: ('{prefix}-nft', '{prefix}-nft-save'),
    BackendMode.PLAIN: ('{prefix}', '{prefix}-save'),
    BackendMode.AUTO: ('{prefix}', '{prefix}-save'),
}


@dataclasses.dataclass(frozen=True)
class RedirectionPolicy:
    """Immutable redirection policy for one address family."""

    proxy_inbound_port: int
    proxy_outbound_port: int
    ipv6: bool = False
    mode: RedirectMode = RedirectMode.REDIRECT_ALL
    proxy_uid: int = -1
    proxy_gid: int = -1
    ports_to_redirect: tuple[int, ...] = ()
    inbound_ports_to_ignore: tuple[str, ...] = ()
    outbound_ports_to_ignore: tuple[str, ...] = ()
    subnets_to_ignore: tuple[str, ...] = ()

    # Execution context
    netns: str = ''
    simulate: bool = False
    use_wait_flag: bool = False
    continue_on_error: bool = False
    bin_path: str = 'iptables'
    save_bin_path: str = 'iptables-save'

    # Opt-in rules, both off by default
    redirect_proxy_loopback: bool = False
    drop_fin_for_testing: bool = False

    @property
    def family(self) -> str:
        return 'ipv6' if self.ipv6 else 'ipv4'

    @property
    def loopback_network(self) -> str:
        return '::1/128' if self.ipv6 else '127.0.0.1/32'

    def with_binaries(self, bin_path: str, save_bin_path: str) -> RedirectionPolicy:
        return dataclasses.replace(self, bin_path=bin_path, save_bin_path=save_bin_path)


def default_binaries(mode: str, ipv6: bool) -> tuple[str, str]:
    """Return the (mutation, dump) binary names for *mode* without probing."""
    try:
        backend = BackendMode(mode)
    except ValueError:
        raise InvalidPolicyError(
            f'--iptables-mode valid values are only "legacy", "nft", "plain" and "auto", got "{mode}"'
        ) from None
    if backend == BackendMode.EXPLICIT:
        raise InvalidPolicyError('explicit mode requires binary paths')
    prefix = 'ip6tables' if ipv6 else 'iptables'
    cmd, save = _DEFAULT_BINARIES[backend]
    return cmd.format(prefix=prefix), save.format(prefix=prefix)


def _sanitize_subnets(subnets, ipv6: bool) -> tuple[str, ...]:
    result = []
    for raw in subnets:
        subnet = str(raw).strip()
        if not subnet:
            continue
        try:
            network = ipaddress.ip_network(subnet, strict=False)
        except ValueError:
            raise InvalidPolicyError(f'{subnet} is not a valid CIDR address') from None
        if (network.version == 6) != ipv6:
            logger.debug(
                'skipping subnet %s for %s rules', subnet, 'ipv6' if ipv6 else 'ipv4'
            )
            continue
        result.append(subnet)
    return tuple(result)


def _validate_proxy_port(value, option: ProxyInitOption) -> int:
    try:
        return parse_port(value)
    except InvalidPortSpecError:
        raise InvalidPolicyError(f'--{option} must be a valid TCP port number') from None


def build_policy(options: Mapping, ipv6: bool = False) -> RedirectionPolicy:
    """Validate *options* and build the policy for one address family.

    *options* is keyed by ``ProxyInitOption`` (see
    ``ProxyInitDefaults.as_options``).  Binary names are the static defaults
    of the requested iptables mode, or the explicit paths when both
    ``firewall-bin-path`` and ``firewall-save-bin-path`` are set.

    Raises:
        InvalidPolicyError: a proxy port, redirect port, subnet or the
            iptables mode is invalid.
    """
    inbound = _validate_proxy_port(
        options.get(ProxyInitOption.INCOMING_PROXY_PORT, -1),
        ProxyInitOption.INCOMING_PROXY_PORT,
    )
    outbound = _validate_proxy_port(
        options.get(ProxyInitOption.OUTGOING_PROXY_PORT, -1),
        ProxyInitOption.OUTGOING_PROXY_PORT,
    )

    bin_path = options.get(ProxyInitOption.FIREWALL_BIN_PATH) or ''
    save_bin_path = options.get(ProxyInitOption.FIREWALL_SAVE_BIN_PATH) or ''
    if bool(bin_path) != bool(save_bin_path):
        raise InvalidPolicyError(
            '--firewall-bin-path and --firewall-save-bin-path must be given together'
        )
    mode = options.get(ProxyInitOption.IPTABLES_MODE) or BackendMode.LEGACY
    default_bin, default_save = default_binaries(mode, ipv6)
    if not bin_path:
        bin_path, save_bin_path = default_bin, default_save

    ports_to_redirect = []
    for port in options.get(ProxyInitOption.PORTS_TO_REDIRECT) or ():
        try:
            ports_to_redirect.append(parse_port(port))
        except InvalidPortSpecError:
            raise InvalidPolicyError(f'"{port}" is not a valid port to redirect') from None

    return RedirectionPolicy(
        proxy_inbound_port=inbound,
        proxy_outbound_port=outbound,
        ipv6=ipv6,
        mode=(
            RedirectMode.REDIRECT_LISTED
            if ports_to_redirect
            else RedirectMode.REDIRECT_ALL
        ),
        proxy_uid=int(options.get(ProxyInitOption.PROXY_UID, -1)),
        proxy_gid=int(options.get(ProxyInitOption.PROXY_GID, -1)),
        ports_to_redirect=tuple(ports_to_redirect),
        inbound_ports_to_ignore=tuple(
            str(p) for p in options.get(ProxyInitOption.INBOUND_PORTS_TO_IGNORE) or ()
        ),
        outbound_ports_to_ignore=tuple(
            str(p) for p in options.get(ProxyInitOption.OUTBOUND_PORTS_TO_IGNORE) or ()
        ),
        subnets_to_ignore=_sanitize_subnets(
            options.get(ProxyInitOption.SUBNETS_TO_IGNORE) or (), ipv6
        ),
        netns=options.get(ProxyInitOption.NETNS) or '',
        simulate=bool(options.get(ProxyInitOption.SIMULATE, False)),
        use_wait_flag=bool(options.get(ProxyInitOption.USE_WAIT_FLAG, False)),
        continue_on_error=bool(options.get(ProxyInitOption.CONTINUE_ON_ERROR, False)),
        bin_path=bin_path,
        save_bin_path=save_bin_path,
        redirect_proxy_loopback=bool(
            options.get(ProxyInitOption.REDIRECT_PROXY_LOOPBACK, False)
        ),
        drop_fin_for_testing=bool(
            options.get(ProxyInitOption.DROP_FIN_FOR_TESTING, False)
        ),
    )
