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

"""Shell script rendering of planned commands."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

import proxyinit
from proxyinit.driver._jinja2_template import Jinja2Template
from proxyinit.platforms.iptables import CommandExecutor

if TYPE_CHECKING:
    from collections.abc import Iterable

    from proxyinit.compiler import Command
    from proxyinit.core import RedirectionPolicy

SCRIPT_PLATFORM = 'iptables'
SCRIPT_TEMPLATE = 'proxy_init.sh.j2'


@dataclasses.dataclass
class ScriptSection:
    family: str
    bin_path: str
    save_bin_path: str
    commands: list[list[str]]
    warnings: list[str] = dataclasses.field(default_factory=list)


def script_section(
    policy: RedirectionPolicy,
    commands: Iterable[Command],
    warnings: Iterable[str] = (),
) -> ScriptSection:
    """Expand *commands* to the argument vectors the executor would run."""
    executor = CommandExecutor(policy)
    return ScriptSection(
        family=policy.family,
        bin_path=policy.bin_path,
        save_bin_path=policy.save_bin_path,
        commands=[executor.argv_for(command) for command in commands],
        warnings=list(warnings),
    )


def render_script(
    sections: Iterable[ScriptSection],
    trace_id: str,
    simulate: bool = False,
) -> str:
    context = {
        'version': proxyinit.__version__,
        'trace_id': trace_id,
        'simulate': simulate,
        'sections': list(sections),
    }
    template = Jinja2Template(SCRIPT_PLATFORM, SCRIPT_TEMPLATE)
    return template.render(context)
