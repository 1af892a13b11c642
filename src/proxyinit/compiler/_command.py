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

"""Command: one abstract iptables invocation, pure data until executed."""

from __future__ import annotations

import dataclasses
import shlex
from enum import StrEnum

COMMENT_PREFIX = 'proxy-init'


class CommandKind(StrEnum):
    CREATE_CHAIN = 'create-chain'
    FLUSH_CHAIN = 'flush-chain'
    DELETE_CHAIN = 'delete-chain'
    APPEND = 'append'
    DELETE_RULE = 'delete-rule'
    DUMP = 'dump'


@dataclasses.dataclass(frozen=True)
class Command:
    """Argument vector for the mutation (or dump) binary.

    ``args`` never contains the binary itself; the executor decides which
    binary to run and whether to wrap it.
    """

    kind: CommandKind
    args: tuple[str, ...]
    tag: str = ''

    @property
    def is_dump(self) -> bool:
        return self.kind == CommandKind.DUMP

    def __str__(self) -> str:
        return shlex.join(self.args)


def format_comment(tag: str, trace_id: str = '') -> str:
    """Build the rule comment ``proxy-init/<tag>[/<trace_id>]``."""
    if trace_id:
        return f'{COMMENT_PREFIX}/{tag}/{trace_id}'
    return f'{COMMENT_PREFIX}/{tag}'


def comment_args(tag: str, trace_id: str = '') -> tuple[str, ...]:
    return ('-m', 'comment', '--comment', format_comment(tag, trace_id))


def make_dump(table: str = 'nat') -> Command:
    """``<save-bin> -t <table>``; an empty *table* dumps every table."""
    if table:
        return Command(CommandKind.DUMP, ('-t', table), tag=f'dump-{table}')
    return Command(CommandKind.DUMP, (), tag='dump-all')
