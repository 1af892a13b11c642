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

"""Unit tests for port and port-range parsing."""

import pytest

from proxyinit.core import (
    InvalidPortSpecError,
    PortRange,
    is_valid_port,
    parse_port,
    parse_port_range,
)


class TestIsValidPort:
    @pytest.mark.parametrize('port', [0, 1, 80, 4143, 65535])
    def test_valid(self, port):
        assert is_valid_port(port)

    @pytest.mark.parametrize('port', [-1, 65536, 100000])
    def test_invalid(self, port):
        assert not is_valid_port(port)


class TestParsePort:
    def test_plain_number(self):
        assert parse_port('4143') == 4143

    @pytest.mark.parametrize('token', ['', 'http', '-1', '65536', '+80', '8_0'])
    def test_rejected(self, token):
        with pytest.raises(InvalidPortSpecError, match='is not a valid TCP port'):
            parse_port(token)


class TestParsePortRange:
    def test_single_port(self):
        assert parse_port_range('23') == PortRange(23, 23)

    def test_range(self):
        assert parse_port_range('23-25') == PortRange(23, 25)

    def test_equal_bounds(self):
        port_range = parse_port_range('25-25')
        assert port_range.is_single
        assert port_range.as_destination() == '25'

    def test_full_domain(self):
        assert parse_port_range('0-65535') == PortRange(0, 65535)

    def test_surrounding_whitespace(self):
        assert parse_port_range(' 4190-4191 ') == PortRange(4190, 4191)

    @pytest.mark.parametrize(
        ('token', 'message'),
        [
            ('', 'ranges expected as'),
            ('notanumber', 'ranges expected as'),
            ('-23-25', 'ranges expected as'),
            ('1-2-3', 'ranges expected as'),
            ('not-number', 'not a valid lower-bound'),
            ('-23', 'not a valid lower-bound'),
            ('65536-65539', 'not a valid lower-bound'),
            ('23-notanumber', 'not a valid upper-bound'),
            ('23-65536', 'not a valid upper-bound'),
            ('25-23', 'upper-bound must be greater than or equal to'),
            ('65536', 'is not a valid TCP port'),
        ],
        ids=[
            'empty',
            'no-separator',
            'leading-dash',
            'three-parts',
            'text-lower',
            'missing-lower',
            'lower-out-of-domain',
            'text-upper',
            'upper-out-of-domain',
            'reversed',
            'single-out-of-domain',
        ],
    )
    def test_rejected(self, token, message):
        with pytest.raises(InvalidPortSpecError, match=message) as exc_info:
            parse_port_range(token)
        assert exc_info.value.token == token

    def test_error_names_the_token(self):
        with pytest.raises(InvalidPortSpecError, match='"not" is not a valid lower-bound'):
            parse_port_range('not-number')


class TestPortRangeFormatting:
    def test_destination_of_range(self):
        assert PortRange(25, 27).as_destination() == '25:27'

    def test_str_of_range(self):
        assert str(PortRange(25, 27)) == '25-27'

    def test_str_of_single(self):
        assert str(PortRange(80, 80)) == '80'
