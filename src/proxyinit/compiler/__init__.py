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

"""Rule compiler: policy in, ordered iptables commands out."""

from ._base import BaseCompiler, CompilerStatus
from ._command import (
    COMMENT_PREFIX,
    Command,
    CommandKind,
    comment_args,
    format_comment,
    make_dump,
)
from ._multiport import MULTIPORT_LIMIT, make_multiport_destinations
from ._nat_compiler import (
    OUTPUT_CHAIN_RE,
    OUTPUT_JUMP_RE,
    PREROUTING_JUMP_RE,
    PROXY_OUTPUT_CHAIN,
    REDIRECT_CHAIN,
    REDIRECT_CHAIN_RE,
    CompileResult,
    ExistingState,
    RedirectionCompiler,
)

__all__ = [
    'COMMENT_PREFIX',
    'MULTIPORT_LIMIT',
    'OUTPUT_CHAIN_RE',
    'OUTPUT_JUMP_RE',
    'PREROUTING_JUMP_RE',
    'PROXY_OUTPUT_CHAIN',
    'REDIRECT_CHAIN',
    'REDIRECT_CHAIN_RE',
    'BaseCompiler',
    'Command',
    'CommandKind',
    'CompileResult',
    'CompilerStatus',
    'ExistingState',
    'RedirectionCompiler',
    'comment_args',
    'format_comment',
    'make_dump',
    'make_multiport_destinations',
]
