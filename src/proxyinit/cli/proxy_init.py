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

"""CLI entry point: redirect a pod's TCP traffic through its proxy."""

import argparse
import json
import logging
import pathlib
import sys
from datetime import datetime, timezone

import proxyinit
from proxyinit.compiler import RedirectionCompiler
from proxyinit.core import (
    InvalidPolicyError,
    ProxyInitError,
    build_policy,
    load_policy_file,
    split_list,
)
from proxyinit.core.options import (
    PROXY_INIT_DEFAULTS,
    BackendMode,
    LogFormat,
    ProxyInitOption,
)
from proxyinit.driver import (
    RedirectionDriver,
    cleanup_dual_stack,
    configure_dual_stack,
    new_trace_id,
    render_script,
    resolve_policy_backend,
    script_section,
    set_close_wait_timeout,
)

__author__ = 'Linuxfabrik GmbH, Zurich/Switzerland'

DESCRIPTION = """proxy-init adds a Kubernetes pod to the service mesh. It installs iptables NAT
rules that redirect the pod's inbound and outbound TCP traffic to the proxy sidecar."""

# Level names accepted by --log-level, including the aliases of other loggers.
LOG_LEVELS = {
    'trace': logging.DEBUG,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
    'panic': logging.CRITICAL,
    'critical': logging.CRITICAL,
}

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger and message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            entry['error'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_format, log_level, stream=None):
    """Configure the root logger; raises InvalidPolicyError on bad values."""
    level = LOG_LEVELS.get(str(log_level).lower())
    if level is None:
        raise InvalidPolicyError(f'not a valid log level: "{log_level}"')
    try:
        fmt = LogFormat(str(log_format).lower())
    except ValueError:
        raise InvalidPolicyError(
            f'--log-format valid values are only "plain" and "json", got "{log_format}"'
        ) from None

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == LogFormat.JSON:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter('%(asctime)s %(levelname)s %(message)s')
        )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='proxy-init',
        description=DESCRIPTION,
    )

    # Every option defaults to None so that values from --config can be
    # told apart from values given on the command line.

    parser.add_argument(
        '-p',
        '--incoming-proxy-port',
        type=int,
        default=None,
        dest='INCOMING_PROXY_PORT',
        help='port to redirect incoming traffic to',
    )

    parser.add_argument(
        '-o',
        '--outgoing-proxy-port',
        type=int,
        default=None,
        dest='OUTGOING_PROXY_PORT',
        help='port to redirect outgoing traffic to',
    )

    parser.add_argument(
        '-u',
        '--proxy-uid',
        type=int,
        default=None,
        dest='PROXY_UID',
        help='user ID the proxy runs as. Traffic of this user is not redirected, '
        'to avoid redirection loops',
    )

    parser.add_argument(
        '-g',
        '--proxy-gid',
        type=int,
        default=None,
        dest='PROXY_GID',
        help='group ID the proxy runs as. Traffic of this group is not redirected',
    )

    parser.add_argument(
        '-r',
        '--ports-to-redirect',
        action='extend',
        type=split_list,
        default=None,
        dest='PORTS_TO_REDIRECT',
        help='comma-separated inbound ports to redirect to the proxy. '
        'If none is given, all ports are redirected. Can be repeated',
    )

    parser.add_argument(
        '--inbound-ports-to-ignore',
        action='extend',
        type=split_list,
        default=None,
        dest='INBOUND_PORTS_TO_IGNORE',
        help='comma-separated inbound ports and/or port ranges (inclusive, '
        '"lower-upper") that are never redirected. Takes precedence over any '
        'other option',
    )

    parser.add_argument(
        '--outbound-ports-to-ignore',
        action='extend',
        type=split_list,
        default=None,
        dest='OUTBOUND_PORTS_TO_IGNORE',
        help='comma-separated outbound ports and/or port ranges (inclusive) '
        'that are never redirected. Takes precedence over any other option',
    )

    parser.add_argument(
        '--subnets-to-ignore',
        action='extend',
        type=split_list,
        default=None,
        dest='SUBNETS_TO_IGNORE',
        help='comma-separated source subnets (CIDR) whose inbound traffic is '
        'never redirected',
    )

    parser.add_argument(
        '--simulate',
        action='store_true',
        default=None,
        dest='SIMULATE',
        help="don't execute any command, just log what would be executed",
    )

    parser.add_argument(
        '--netns',
        default=None,
        dest='NETNS',
        help='network namespace to run the iptables commands in',
    )

    parser.add_argument(
        '-w',
        '--use-wait-flag',
        action='store_true',
        default=None,
        dest='USE_WAIT_FLAG',
        help='append "-w" to the iptables commands to wait for the xtables lock',
    )

    parser.add_argument(
        '--timeout-close-wait-secs',
        type=int,
        default=None,
        dest='TIMEOUT_CLOSE_WAIT_SECS',
        help='set net.netfilter.nf_conntrack_tcp_timeout_close_wait (0 = leave as is)',
    )

    parser.add_argument(
        '--log-format',
        choices=[f.value for f in LogFormat],
        default=None,
        dest='LOG_FORMAT',
        help='log format. Default: %s' % PROXY_INIT_DEFAULTS.log_format,
    )

    parser.add_argument(
        '--log-level',
        default=None,
        dest='LOG_LEVEL',
        help='log level. Default: %s' % PROXY_INIT_DEFAULTS.log_level,
    )

    parser.add_argument(
        '--iptables-mode',
        choices=[m.value for m in BackendMode if m != BackendMode.EXPLICIT],
        default=None,
        dest='IPTABLES_MODE',
        help='variant of the iptables commands to use. "auto" detects the '
        'variant the host already uses. Default: %s' % PROXY_INIT_DEFAULTS.iptables_mode,
    )

    parser.add_argument(
        '--ipv6',
        action=argparse.BooleanOptionalAction,
        default=None,
        dest='IPV6',
        help='also install the rules via ip6tables for dual-stack networking. '
        'Default: on',
    )

    parser.add_argument(
        '--firewall-bin-path',
        default=None,
        dest='FIREWALL_BIN_PATH',
        help='explicit iptables binary for the IPv4 rules, bypassing backend '
        'selection. Requires --firewall-save-bin-path',
    )

    parser.add_argument(
        '--firewall-save-bin-path',
        default=None,
        dest='FIREWALL_SAVE_BIN_PATH',
        help='explicit iptables-save binary for the IPv4 rules. '
        'Requires --firewall-bin-path',
    )

    parser.add_argument(
        '--continue-on-error',
        action='store_true',
        default=None,
        dest='CONTINUE_ON_ERROR',
        help='keep going when a command fails',
    )

    parser.add_argument(
        '--redirect-proxy-loopback',
        action='store_true',
        default=None,
        dest='REDIRECT_PROXY_LOOPBACK',
        help="send the proxy's own loopback traffic that is not aimed at localhost "
        'back to the inbound proxy port. Requires --proxy-uid',
    )

    parser.add_argument(
        '--drop-fin-for-testing',
        action='store_true',
        default=None,
        dest='DROP_FIN_FOR_TESTING',
        help=argparse.SUPPRESS,
    )

    parser.add_argument(
        '--cleanup',
        action='store_true',
        dest='CLEANUP',
        help='remove the rules installed by a previous run',
    )

    parser.add_argument(
        '--config',
        default='',
        dest='CONFIG',
        help='YAML policy file. Options given on the command line take precedence',
    )

    parser.add_argument(
        '--script',
        default='',
        dest='SCRIPT',
        help='write the planned commands as a shell script to this file '
        '("-" for stdout) instead of executing them',
    )

    parser.add_argument(
        '-V',
        '--version',
        action='version',
        version=f'%(prog)s: v{proxyinit.__version__} by {__author__}',
    )

    return parser.parse_args(argv)


def merge_options(args):
    """Defaults, overridden by the policy file, overridden by the command line."""
    options = PROXY_INIT_DEFAULTS.as_options()
    if args.CONFIG:
        options.update(load_policy_file(args.CONFIG))
    for key in ProxyInitOption:
        value = getattr(args, key.name, None)
        if value is not None:
            options[key] = value
    if args.CLEANUP:
        options[ProxyInitOption.CONTINUE_ON_ERROR] = True
    return options


def build_policies(options, look_path=None, runner=None, detect=True):
    """Return the IPv4 policy and, unless disabled, the IPv6 policy.

    Explicit binary paths only apply to IPv4; the IPv6 policy always uses
    the binaries of the requested iptables mode.  Without *detect* the
    static binary names of the mode are kept and the host is not probed.
    """
    mode = options[ProxyInitOption.IPTABLES_MODE]
    explicit = bool(options[ProxyInitOption.FIREWALL_BIN_PATH])

    v6_options = dict(options)
    v6_options[ProxyInitOption.FIREWALL_BIN_PATH] = ''
    v6_options[ProxyInitOption.FIREWALL_SAVE_BIN_PATH] = ''

    v4 = build_policy(options, ipv6=False)
    v6 = build_policy(v6_options, ipv6=True) if options[ProxyInitOption.IPV6] else None
    if not detect:
        return v4, v6

    v4, selection = resolve_policy_backend(
        v4, mode, explicit=explicit, runner=runner, look_path=look_path
    )
    logger.debug('ipv4 backend: %s', selection)
    if v6 is None:
        return v4, None

    v6, selection = resolve_policy_backend(v6, mode, runner=runner, look_path=look_path)
    logger.debug('ipv6 backend: %s', selection)
    return v4, v6


def write_script(path, policies, trace_id, cleanup=False):
    sections = []
    for policy in policies:
        if cleanup:
            commands = RedirectionCompiler(policy, trace_id).teardown()
            sections.append(script_section(policy, commands))
        else:
            result = RedirectionDriver(policy, trace_id=trace_id).plan()
            sections.append(script_section(policy, result.commands, result.warnings))

    simulate = any(policy.simulate for policy in policies)
    script = render_script(sections, trace_id, simulate=simulate)
    if path == '-':
        sys.stdout.write(script)
        return
    target = pathlib.Path(path)
    try:
        target.write_text(script, encoding='utf-8')
    except OSError as e:
        raise InvalidPolicyError(f'failed to write script {target}: {e}') from e
    target.chmod(0o755)
    logger.info('wrote %s', target)


def run(args, options):
    timeout = options[ProxyInitOption.TIMEOUT_CLOSE_WAIT_SECS]
    if timeout:
        simulate = options[ProxyInitOption.SIMULATE] or bool(args.SCRIPT)
        set_close_wait_timeout(timeout, simulate=simulate)

    trace_id = new_trace_id()
    v4, v6 = build_policies(options, detect=not args.SCRIPT)

    if args.SCRIPT:
        policies = [v4] if v6 is None else [v4, v6]
        write_script(args.SCRIPT, policies, trace_id, cleanup=args.CLEANUP)
        return 0

    v4_driver = RedirectionDriver(v4, trace_id=trace_id)
    v6_driver = RedirectionDriver(v6, trace_id=trace_id) if v6 is not None else None
    if args.CLEANUP:
        reports = cleanup_dual_stack(v4_driver, v6_driver)
    else:
        reports = configure_dual_stack(v4_driver, v6_driver)

    for report in reports:
        for err in report.errors:
            logger.warning('%s: %s', report.family, err)
    return 0


def main(argv=None):
    args = parse_args(argv)

    try:
        options = merge_options(args)
        setup_logging(
            options[ProxyInitOption.LOG_FORMAT], options[ProxyInitOption.LOG_LEVEL]
        )
        return run(args, options)
    except ProxyInitError as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
