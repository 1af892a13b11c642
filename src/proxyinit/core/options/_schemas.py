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

"""Typed option schemas with shared defaults.

``ProxyInitDefaults`` is the single source of truth for what the command
line and the YAML policy file fall back to when an option is not given.
Integer values of -1 mean "not set".
"""

from dataclasses import dataclass, field, fields

from ._keys import BackendMode, LogFormat, ProxyInitOption


@dataclass
class ProxyInitDefaults:
    """Default values for all proxy-init options."""

    # Proxy (-1 = not set; the CLI rejects unset proxy ports)
    incoming_proxy_port: int = -1
    outgoing_proxy_port: int = -1
    proxy_uid: int = -1
    proxy_gid: int = -1

    # Lists (empty = nothing to redirect explicitly / nothing to ignore)
    ports_to_redirect: list[int] = field(default_factory=list)
    inbound_ports_to_ignore: list[str] = field(default_factory=list)
    outbound_ports_to_ignore: list[str] = field(default_factory=list)
    subnets_to_ignore: list[str] = field(default_factory=list)

    # Execution
    simulate: bool = False
    netns: str = ''
    use_wait_flag: bool = False
    continue_on_error: bool = False
    timeout_close_wait_secs: int = 0

    # Backend
    iptables_mode: str = BackendMode.LEGACY
    ipv6: bool = True
    firewall_bin_path: str = ''
    firewall_save_bin_path: str = ''

    # Logging
    log_format: str = LogFormat.PLAIN
    log_level: str = 'info'

    # Optional rules
    redirect_proxy_loopback: bool = False
    drop_fin_for_testing: bool = False

    def as_options(self) -> dict[ProxyInitOption, object]:
        """Return the defaults keyed by ``ProxyInitOption``."""
        return {
            ProxyInitOption(f.name.replace('_', '-')): getattr(self, f.name)
            for f in fields(self)
        }


PROXY_INIT_DEFAULTS = ProxyInitDefaults()

# Options whose value is a list of strings/ints.
LIST_OPTIONS = frozenset(
    {
        ProxyInitOption.PORTS_TO_REDIRECT,
        ProxyInitOption.INBOUND_PORTS_TO_IGNORE,
        ProxyInitOption.OUTBOUND_PORTS_TO_IGNORE,
        ProxyInitOption.SUBNETS_TO_IGNORE,
    }
)

BOOL_OPTIONS = frozenset(
    {
        ProxyInitOption.SIMULATE,
        ProxyInitOption.USE_WAIT_FLAG,
        ProxyInitOption.CONTINUE_ON_ERROR,
        ProxyInitOption.IPV6,
        ProxyInitOption.REDIRECT_PROXY_LOOPBACK,
        ProxyInitOption.DROP_FIN_FOR_TESTING,
    }
)

INT_OPTIONS = frozenset(
    {
        ProxyInitOption.INCOMING_PROXY_PORT,
        ProxyInitOption.OUTGOING_PROXY_PORT,
        ProxyInitOption.PROXY_UID,
        ProxyInitOption.PROXY_GID,
        ProxyInitOption.TIMEOUT_CLOSE_WAIT_SECS,
    }
)
