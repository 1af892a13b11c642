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

"""RedirectionCompiler: turns a RedirectionPolicy into iptables -t nat commands.

Two chains are owned by proxy-init:

- ``PROXY_INIT_REDIRECT``, reached from ``PREROUTING``, sends inbound TCP
  traffic to the proxy's inbound port;
- ``PROXY_INIT_OUTPUT``, reached from ``OUTPUT``, sends outbound TCP traffic
  to the proxy's outbound port, except traffic of the proxy itself.

The compiler reads the current ``iptables-save -t nat`` output to stay
idempotent: existing chains are flushed instead of created, and existing
jumps are not appended a second time.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import TYPE_CHECKING

from proxyinit.compiler._base import BaseCompiler
from proxyinit.compiler._command import Command, CommandKind, comment_args
from proxyinit.compiler._multiport import make_multiport_destinations
from proxyinit.core.options import RedirectMode

if TYPE_CHECKING:
    from proxyinit.core import InvalidPortSpecError, RedirectionPolicy

logger = logging.getLogger(__name__)

NAT_TABLE = 'nat'
FILTER_TABLE = 'filter'

PREROUTING_CHAIN = 'PREROUTING'
OUTPUT_CHAIN = 'OUTPUT'
INPUT_CHAIN = 'INPUT'
REDIRECT_CHAIN = 'PROXY_INIT_REDIRECT'
PROXY_OUTPUT_CHAIN = 'PROXY_INIT_OUTPUT'

# Signatures of proxy-init's own state in iptables-save output.
PREROUTING_JUMP_RE = re.compile(rf'(?m)^-A {PREROUTING_CHAIN} (.+ )?-j {REDIRECT_CHAIN}')
OUTPUT_JUMP_RE = re.compile(rf'(?m)^-A {OUTPUT_CHAIN} (.+ )?-j {PROXY_OUTPUT_CHAIN}')
REDIRECT_CHAIN_RE = re.compile(rf'(?m)^:{REDIRECT_CHAIN} ')
OUTPUT_CHAIN_RE = re.compile(rf'(?m)^:{PROXY_OUTPUT_CHAIN} ')

TAG_INSTALL_PREROUTING = 'install-proxy-init-prerouting'
TAG_INSTALL_OUTPUT = 'install-proxy-init-output'


@dataclasses.dataclass(frozen=True)
class ExistingState:
    """What a table dump says about proxy-init's chains and jumps."""

    redirect_chain: bool = False
    output_chain: bool = False
    prerouting_jump: bool = False
    output_jump: bool = False

    @classmethod
    def scan(cls, dump: str | None) -> ExistingState:
        text = dump or ''
        return cls(
            redirect_chain=REDIRECT_CHAIN_RE.search(text) is not None,
            output_chain=OUTPUT_CHAIN_RE.search(text) is not None,
            prerouting_jump=PREROUTING_JUMP_RE.search(text) is not None,
            output_jump=OUTPUT_JUMP_RE.search(text) is not None,
        )


@dataclasses.dataclass
class CompileResult:
    commands: list[Command]
    state: ExistingState
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def inbound_jump_exists(self) -> bool:
        return self.state.prerouting_jump

    @property
    def outbound_jump_exists(self) -> bool:
        return self.state.output_jump

    @property
    def redirect_chain_exists(self) -> bool:
        return self.state.redirect_chain

    @property
    def output_chain_exists(self) -> bool:
        return self.state.output_chain


class RedirectionCompiler(BaseCompiler):
    """Compile a RedirectionPolicy into an ordered command list.

    *trace_id* is appended to the comment of every chain-body rule so that
    rules of different runs can be told apart.  Jump rules are never
    stamped, since teardown deletes them by their exact specification.
    """

    def __init__(self, policy: RedirectionPolicy, trace_id: str = '') -> None:
        super().__init__()
        self.policy = policy
        self.trace_id = trace_id

    # -- Rule builders --

    def _comment(self, tag: str) -> tuple[str, ...]:
        return comment_args(tag, self.trace_id)

    def make_create_chain(self, chain: str) -> Command:
        return Command(
            CommandKind.CREATE_CHAIN, ('-t', NAT_TABLE, '-N', chain), tag=f'create-{chain}'
        )

    def make_flush_chain(self, chain: str) -> Command:
        return Command(
            CommandKind.FLUSH_CHAIN, ('-t', NAT_TABLE, '-F', chain), tag=f'flush-{chain}'
        )

    def make_delete_chain(self, chain: str) -> Command:
        return Command(
            CommandKind.DELETE_CHAIN, ('-t', NAT_TABLE, '-X', chain), tag=f'delete-{chain}'
        )

    def make_jump(self, chain: str, target: str, tag: str, delete: bool = False) -> Command:
        return Command(
            CommandKind.DELETE_RULE if delete else CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-D' if delete else '-A', chain,
                '-j', target,
                *comment_args(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_ignore_user_id(self, chain: str, uid: int, tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-m', 'owner',
                '--uid-owner', str(uid),
                '-j', 'RETURN',
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_ignore_group_id(self, chain: str, gid: int, tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-m', 'owner',
                '--gid-owner', str(gid),
                '-j', 'RETURN',
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_ignore_loopback(self, chain: str, tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-o', 'lo',
                '-j', 'RETURN',
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_ignore_ports(self, chain: str, destinations: list[str], tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-p', 'tcp',
                '--match', 'multiport',
                '--dports', ','.join(destinations),
                '-j', 'RETURN',
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_ignore_subnet(self, chain: str, subnet: str, tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-p', 'all',
                '-j', 'RETURN',
                '-s', subnet,
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_redirect_to_port(self, chain: str, to_port: int, tag: str) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-p', 'tcp',
                '-j', 'REDIRECT',
                '--to-port', str(to_port),
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_redirect_destination_port(
        self, chain: str, destination_port: int, to_port: int, tag: str
    ) -> Command:
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-p', 'tcp',
                '--destination-port', str(destination_port),
                '-j', 'REDIRECT',
                '--to-port', str(to_port),
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_redirect_proxy_loopback(self, chain: str, target: str, uid: int, tag: str) -> Command:
        """Send proxy-owned loopback traffic not aimed at localhost to *target*.

        Covers app -> proxy(outbound) -> proxy(inbound) -> app calls made
        through the pod's own address.
        """
        return Command(
            CommandKind.APPEND,
            (
                '-t', NAT_TABLE,
                '-A', chain,
                '-m', 'owner',
                '--uid-owner', str(uid),
                '-o', 'lo',
                '!', '-d', self.policy.loopback_network,
                '-j', target,
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    def make_drop_fin(self, chain: str, port: int, tag: str) -> Command:
        """Test hook: drop FIN segments to the proxy in the filter table."""
        return Command(
            CommandKind.APPEND,
            (
                '-t', FILTER_TABLE,
                '-A', chain,
                '-p', 'tcp',
                '--dport', str(port),
                '--tcp-flags', 'FIN', 'FIN',
                '-j', 'DROP',
                *self._comment(tag),
            ),
            tag=tag,
        )  # fmt: skip

    # -- Chain assembly --

    def _ensure_chain(self, chain: str, exists: bool) -> Command:
        if exists:
            logger.debug('chain %s already exists; flushing it', chain)
            return self.make_flush_chain(chain)
        return self.make_create_chain(chain)

    def _on_invalid_port(self, token: str, exc: InvalidPortSpecError) -> None:
        self.warning(f'invalid port configuration of "{token}": {exc}')

    def add_rules_for_ignored_ports(self, ports, chain: str) -> list[Command]:
        commands = []
        for destinations in make_multiport_destinations(
            ports, on_invalid=self._on_invalid_port
        ):
            if not destinations:
                continue
            joined = ','.join(destinations)
            logger.debug('will ignore port(s) %s on chain %s', joined, chain)
            commands.append(
                self.make_ignore_ports(chain, destinations, f'ignore-port-{joined}')
            )
        return commands

    def add_rules_for_ignored_subnets(self, chain: str) -> list[Command]:
        return [
            self.make_ignore_subnet(chain, subnet, f'ignore-subnet-{subnet}')
            for subnet in self.policy.subnets_to_ignore
        ]

    def add_rules_for_inbound_port_redirect(self, chain: str) -> list[Command]:
        policy = self.policy
        if policy.mode == RedirectMode.REDIRECT_ALL:
            logger.debug('will redirect all inbound ports to %d', policy.proxy_inbound_port)
            return [
                self.make_redirect_to_port(
                    chain,
                    policy.proxy_inbound_port,
                    'redirect-all-incoming-to-proxy-port',
                )
            ]

        logger.debug(
            'will redirect inbound ports %s to %d',
            list(policy.ports_to_redirect),
            policy.proxy_inbound_port,
        )
        return [
            self.make_redirect_destination_port(
                chain,
                port,
                policy.proxy_inbound_port,
                f'redirect-port-{port}-to-proxy-port',
            )
            for port in policy.ports_to_redirect
        ]

    def add_incoming_traffic_rules(self, state: ExistingState) -> list[Command]:
        policy = self.policy
        commands = [self._ensure_chain(REDIRECT_CHAIN, state.redirect_chain)]
        commands += self.add_rules_for_ignored_ports(
            policy.inbound_ports_to_ignore, REDIRECT_CHAIN
        )
        commands += self.add_rules_for_ignored_subnets(REDIRECT_CHAIN)
        commands += self.add_rules_for_inbound_port_redirect(REDIRECT_CHAIN)

        if state.prerouting_jump:
            logger.debug('jump from %s to %s already installed', PREROUTING_CHAIN, REDIRECT_CHAIN)
        else:
            commands.append(
                self.make_jump(PREROUTING_CHAIN, REDIRECT_CHAIN, TAG_INSTALL_PREROUTING)
            )
            if policy.drop_fin_for_testing:
                commands.append(
                    self.make_drop_fin(
                        INPUT_CHAIN,
                        policy.proxy_inbound_port,
                        'drop-inbound-fin-to-proxy-for-testing',
                    )
                )
        return commands

    def add_outgoing_traffic_rules(self, state: ExistingState) -> list[Command]:
        policy = self.policy
        commands = [self._ensure_chain(PROXY_OUTPUT_CHAIN, state.output_chain)]

        # Ignore traffic from the proxy
        if policy.proxy_uid > 0:
            if policy.redirect_proxy_loopback:
                commands.append(
                    self.make_redirect_proxy_loopback(
                        PROXY_OUTPUT_CHAIN,
                        REDIRECT_CHAIN,
                        policy.proxy_uid,
                        'redirect-non-loopback-local-traffic',
                    )
                )
            commands.append(
                self.make_ignore_user_id(
                    PROXY_OUTPUT_CHAIN, policy.proxy_uid, 'ignore-proxy-user-id'
                )
            )
        if policy.proxy_gid > 0:
            commands.append(
                self.make_ignore_group_id(
                    PROXY_OUTPUT_CHAIN, policy.proxy_gid, 'ignore-proxy-group-id'
                )
            )

        commands.append(self.make_ignore_loopback(PROXY_OUTPUT_CHAIN, 'ignore-loopback'))
        commands += self.add_rules_for_ignored_ports(
            policy.outbound_ports_to_ignore, PROXY_OUTPUT_CHAIN
        )
        commands.append(
            self.make_redirect_to_port(
                PROXY_OUTPUT_CHAIN,
                policy.proxy_outbound_port,
                'redirect-all-outgoing-to-proxy-port',
            )
        )

        if state.output_jump:
            logger.debug('jump from %s to %s already installed', OUTPUT_CHAIN, PROXY_OUTPUT_CHAIN)
        else:
            commands.append(
                self.make_jump(OUTPUT_CHAIN, PROXY_OUTPUT_CHAIN, TAG_INSTALL_OUTPUT)
            )
            if policy.drop_fin_for_testing:
                commands.append(
                    self.make_drop_fin(
                        OUTPUT_CHAIN,
                        policy.proxy_outbound_port,
                        'drop-outbound-fin-to-proxy-for-testing',
                    )
                )
        return commands

    # -- Entry points --

    def compile(self, existing_rules: str | None = '') -> CompileResult:
        """Return the commands that bring the nat table to the policy's state."""
        self.reset()
        state = ExistingState.scan(existing_rules)
        commands = self.add_incoming_traffic_rules(state)
        commands += self.add_outgoing_traffic_rules(state)
        return CompileResult(commands=commands, state=state, warnings=self.get_warnings())

    def teardown(self) -> list[Command]:
        """Return the commands removing everything ``compile`` installs."""
        return [
            self.make_jump(PREROUTING_CHAIN, REDIRECT_CHAIN, TAG_INSTALL_PREROUTING, delete=True),
            self.make_jump(OUTPUT_CHAIN, PROXY_OUTPUT_CHAIN, TAG_INSTALL_OUTPUT, delete=True),
            self.make_flush_chain(PROXY_OUTPUT_CHAIN),
            self.make_flush_chain(REDIRECT_CHAIN),
            self.make_delete_chain(PROXY_OUTPUT_CHAIN),
            self.make_delete_chain(REDIRECT_CHAIN),
        ]
