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

"""Run orchestration and script rendering."""

from ._jinja2_template import Jinja2Template
from ._redirect_driver import (
    CLOSE_WAIT_SYSCTL,
    RedirectionDriver,
    RunReport,
    cleanup_dual_stack,
    configure_dual_stack,
    new_trace_id,
    resolve_policy_backend,
    set_close_wait_timeout,
)
from ._script import ScriptSection, render_script, script_section

__all__ = [
    'CLOSE_WAIT_SYSCTL',
    'Jinja2Template',
    'RedirectionDriver',
    'RunReport',
    'ScriptSection',
    'cleanup_dual_stack',
    'configure_dual_stack',
    'new_trace_id',
    'render_script',
    'resolve_policy_backend',
    'script_section',
    'set_close_wait_timeout',
]
