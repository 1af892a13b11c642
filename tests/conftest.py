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

"""Shared pytest fixtures: policy factory and fakes for the host binaries."""

import subprocess

import pytest

from proxyinit.core import RedirectionPolicy

ALL_BINARIES = (
    'iptables',
    'iptables-save',
    'iptables-legacy',
    'iptables-legacy-save',
    'iptables-nft',
    'iptables-nft-save',
    'ip6tables',
    'ip6tables-save',
    'ip6tables-legacy',
    'ip6tables-legacy-save',
    'ip6tables-nft',
    'ip6tables-nft-save',
)


class FakeLookPath:
    """``shutil.which`` stand-in resolving only the given names."""

    def __init__(self, available=ALL_BINARIES):
        self.available = set(available)
        self.calls: list[str] = []

    def __call__(self, name):
        self.calls.append(name)
        if name in self.available:
            return f'/usr/sbin/{name}'
        return None


class FakeRunner:
    """``subprocess.run`` stand-in.

    Outputs are looked up by the full argument vector, then by its first
    element.  Values are ``(returncode, output)`` pairs or an exception
    instance to raise.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls: list[list[str]] = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        response = self.responses.get(tuple(argv), self.responses.get(argv[0], (0, '')))
        if isinstance(response, BaseException):
            raise response
        returncode, output = response
        return subprocess.CompletedProcess(argv, returncode, stdout=output)


@pytest.fixture
def make_policy():
    """Return a factory for policies with the usual proxy ports."""

    def _make(**overrides):
        values = {
            'proxy_inbound_port': 4143,
            'proxy_outbound_port': 4140,
            'proxy_uid': 2102,
        }
        values.update(overrides)
        return RedirectionPolicy(**values)

    return _make


@pytest.fixture
def look_path():
    return FakeLookPath()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def make_look_path():
    return FakeLookPath
