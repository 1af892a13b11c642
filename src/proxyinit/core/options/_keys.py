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

"""Canonical option key definitions using StrEnum.

The same keys are used by the command line (as long option names), by the
YAML policy file and by the policy builder, so a typo is an AttributeError
at import time instead of a silently ignored setting.

Example:
    from proxyinit.core.options import ProxyInitOption

    # In a YAML file:
    #   incoming-proxy-port: 4143

    # In the policy builder:
    port = options[ProxyInitOption.INCOMING_PROXY_PORT]
"""

from enum import StrEnum


class ProxyInitOption(StrEnum):
    """Option keys accepted on the command line and in the YAML file."""

    # Proxy
    INCOMING_PROXY_PORT = 'incoming-proxy-port'
    OUTGOING_PROXY_PORT = 'outgoing-proxy-port'
    PROXY_UID = 'proxy-uid'
    PROXY_GID = 'proxy-gid'

    # Port and subnet lists
    PORTS_TO_REDIRECT = 'ports-to-redirect'
    INBOUND_PORTS_TO_IGNORE = 'inbound-ports-to-ignore'
    OUTBOUND_PORTS_TO_IGNORE = 'outbound-ports-to-ignore'
    SUBNETS_TO_IGNORE = 'subnets-to-ignore'

    # Execution
    SIMULATE = 'simulate'
    NETNS = 'netns'
    USE_WAIT_FLAG = 'use-wait-flag'
    CONTINUE_ON_ERROR = 'continue-on-error'
    TIMEOUT_CLOSE_WAIT_SECS = 'timeout-close-wait-secs'

    # Backend
    IPTABLES_MODE = 'iptables-mode'
    IPV6 = 'ipv6'
    FIREWALL_BIN_PATH = 'firewall-bin-path'
    FIREWALL_SAVE_BIN_PATH = 'firewall-save-bin-path'

    # Logging
    LOG_FORMAT = 'log-format'
    LOG_LEVEL = 'log-level'

    # Optional rules
    REDIRECT_PROXY_LOOPBACK = 'redirect-proxy-loopback'
    DROP_FIN_FOR_TESTING = 'drop-fin-for-testing'


class BackendMode(StrEnum):
    """Which iptables variant to invoke."""

    LEGACY = 'legacy'
    NFT = 'nft'
    PLAIN = 'plain'
    AUTO = 'auto'
    # Set internally when explicit binary paths are given.
    EXPLICIT = 'explicit'


class RedirectMode(StrEnum):
    """How inbound traffic is sent to the proxy."""

    REDIRECT_ALL = 'redirect-all'
    REDIRECT_LISTED = 'redirect-listed'


class LogFormat(StrEnum):
    PLAIN = 'plain'
    JSON = 'json'
