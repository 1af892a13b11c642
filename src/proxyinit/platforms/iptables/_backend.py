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

"""iptables backend selection (legacy, nft or plain).

Hosts may ship both the legacy and the nf_tables flavour of iptables, and
the kubelet already wrote its rules with one of them.  Rules must be
installed with the same flavour, otherwise they end up in a ruleset the
kernel evaluates separately.

Detection looks for the kubelet's canary chains in the mangle table of
each flavour, nft first.  Without canaries, the flavour holding more rules
wins, legacy on a tie.

Binary lookups go through a *look_path* callable with the semantics of
``shutil.which`` (a path, or None), and dumps through a *run_save* callable
taking an argument vector and returning the combined output.  Both are
injected so that the selection can be exercised without a host firewall.
"""

from __future__ import annotations

import dataclasses
import logging
import shutil
from collections.abc import Callable

from proxyinit.core import BackendResolutionError, InvalidPolicyError, ProxyInitError
from proxyinit.core.options import BackendMode

logger = logging.getLogger(__name__)

LookPath = Callable[[str], str | None]
RunSave = Callable[[list[str]], str]

# Chains the kubelet creates in the mangle table of the flavour it uses.
MARKER_CHAINS = ('KUBE-IPTABLES-HINT', 'KUBE-KUBELET-CANARY')


@dataclasses.dataclass(frozen=True)
class BackendSelection:
    mode: BackendMode
    bin_path: str
    save_bin_path: str
    detected: BackendMode | None = None


def _default_look_path(name: str) -> str | None:
    return shutil.which(name)


def count_rules_in_output(output: str) -> int:
    """Number of rule lines (``-A ...``) in an iptables-save dump."""
    return sum(1 for line in output.splitlines() if line.startswith('-'))


def has_kubernetes_chains(output: str) -> bool:
    return any(marker in output for marker in MARKER_CHAINS)


def find_best_binary(
    look_path: LookPath | None,
    prefix: str,
    backend_mode: str,
    save_or_restore: str,
) -> str:
    """Return ``<prefix>-<mode>-<suffix>`` or ``<prefix>-<suffix>``, whichever resolves first.

    Raises:
        BackendResolutionError: neither candidate is on the path.
    """
    look_path = look_path or _default_look_path
    candidates = [
        f'{prefix}-{backend_mode}-{save_or_restore}',
        f'{prefix}-{save_or_restore}',
    ]
    for candidate in candidates:
        if look_path(candidate):
            logger.debug('Looked up iptables command %s', candidate)
            return candidate
    raise BackendResolutionError(candidates)


def _run_quietly(run_save: RunSave, argv: list[str]) -> str:
    try:
        return run_save(argv) or ''
    except ProxyInitError as e:
        logger.debug('backend probe %s failed: %s', ' '.join(argv), e)
        return ''


def _detect(run_save: RunSave, nft_save: str, legacy_save: str) -> BackendMode:
    if has_kubernetes_chains(_run_quietly(run_save, [nft_save, '-t', 'mangle'])):
        return BackendMode.NFT
    if has_kubernetes_chains(_run_quietly(run_save, [legacy_save, '-t', 'mangle'])):
        return BackendMode.LEGACY

    legacy_lines = count_rules_in_output(_run_quietly(run_save, [legacy_save]))
    nft_lines = count_rules_in_output(_run_quietly(run_save, [nft_save]))
    logger.debug('rule count: legacy=%d nft=%d', legacy_lines, nft_lines)
    if legacy_lines >= nft_lines:
        return BackendMode.LEGACY
    return BackendMode.NFT


def _parse_mode(requested: str) -> BackendMode:
    try:
        return BackendMode(str(requested).lower())
    except ValueError:
        raise InvalidPolicyError(
            f'--iptables-mode valid values are only "legacy", "nft", "plain" and "auto", got "{requested}"'
        ) from None


def detect_backend(
    run_save: RunSave,
    look_path: LookPath | None,
    ipv6: bool,
    requested: str,
) -> BackendSelection:
    """Detect the backend in use and pick the binaries for *requested*.

    ``auto`` takes the detected backend.  An explicit ``legacy``, ``nft``
    or ``plain`` is honoured even when detection disagrees; the mismatch
    is logged as a warning.
    """
    mode = _parse_mode(requested)
    if mode == BackendMode.EXPLICIT:
        raise InvalidPolicyError('explicit mode requires binary paths')

    prefix = 'ip6tables' if ipv6 else 'iptables'
    nft_save = find_best_binary(look_path, prefix, BackendMode.NFT, 'save')
    legacy_save = find_best_binary(look_path, prefix, BackendMode.LEGACY, 'save')
    nft_cmd = nft_save.removesuffix('-save')
    legacy_cmd = legacy_save.removesuffix('-save')

    detected = _detect(run_save, nft_save, legacy_save)

    if mode == BackendMode.AUTO:
        logger.debug('Detected iptables backend: %s', detected)
        use = detected
    elif mode != detected:
        logger.warning(
            'iptables backend "%s" does not match the detected backend "%s"; honoring "%s"',
            mode,
            detected,
            mode,
        )
        use = mode
    else:
        logger.debug('iptables backend "%s" matches the detected backend', mode)
        use = mode

    if use == BackendMode.LEGACY:
        bin_path, save_bin_path = legacy_cmd, legacy_save
    elif use == BackendMode.NFT:
        bin_path, save_bin_path = nft_cmd, nft_save
    else:
        bin_path, save_bin_path = prefix, f'{prefix}-save'

    logger.debug('Using iptables commands %s and %s', bin_path, save_bin_path)
    return BackendSelection(
        mode=use, bin_path=bin_path, save_bin_path=save_bin_path, detected=detected
    )


def select_backend(
    run_save: RunSave,
    look_path: LookPath | None = None,
    ipv6: bool = False,
    requested: str = BackendMode.LEGACY,
    bin_path: str = '',
    save_bin_path: str = '',
) -> BackendSelection:
    """Pick the binaries for one address family.

    Explicit *bin_path* and *save_bin_path* bypass detection entirely.
    """
    if bin_path or save_bin_path:
        if not (bin_path and save_bin_path):
            raise InvalidPolicyError(
                '--firewall-bin-path and --firewall-save-bin-path must be given together'
            )
        logger.debug('Using explicit iptables commands %s and %s', bin_path, save_bin_path)
        return BackendSelection(
            mode=BackendMode.EXPLICIT, bin_path=bin_path, save_bin_path=save_bin_path
        )
    return detect_backend(run_save, look_path, ipv6, requested)


def resolve_bin_fallback(
    bin_path: str,
    save_bin_path: str,
    look_path: LookPath | None = None,
) -> tuple[str, str]:
    """Swap a missing binary pair for an available one of the same family.

    The nft pair is preferred, then the plain pair, then the legacy pair.
    When nothing resolves, the pair is returned unchanged and execution
    fails later with the binary's name in the error.
    """
    look_path = look_path or _default_look_path

    if look_path(bin_path) and look_path(save_bin_path):
        logger.debug('iptables: using configured binaries %s and %s', bin_path, save_bin_path)
        return bin_path, save_bin_path

    prefix = 'ip6tables' if 'ip6tables' in bin_path or 'ip6tables' in save_bin_path else 'iptables'
    candidates = [
        (f'{prefix}-nft', f'{prefix}-nft-save'),
        (prefix, f'{prefix}-save'),
        (f'{prefix}-legacy', f'{prefix}-legacy-save'),
    ]
    for cmd, save in candidates:
        if look_path(cmd) and look_path(save):
            if (cmd, save) != (bin_path, save_bin_path):
                logger.warning(
                    'iptables: %s/%s not found; falling back to %s/%s',
                    bin_path,
                    save_bin_path,
                    cmd,
                    save,
                )
            return cmd, save

    logger.error(
        'iptables: no suitable binaries found on PATH for %s/%s; commands may fail',
        bin_path,
        save_bin_path,
    )
    return bin_path, save_bin_path
