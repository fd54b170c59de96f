##############################################################################
#
# Copyright (c) 2003 Zope Corporation and Contributors.
# All Rights Reserved.
#
# This software is subject to the provisions of the Zope Public License,
# Version 2.1 (ZPL).  A copy of the ZPL should accompany this distribution.
# THIS SOFTWARE IS PROVIDED "AS IS" AND ANY AND ALL EXPRESS OR IMPLIED
# WARRANTIES ARE DISCLAIMED, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED
# WARRANTIES OF TITLE, MERCHANTABILITY, AGAINST INFRINGEMENT, AND FITNESS
# FOR A PARTICULAR PURPOSE.
#
##############################################################################
"""
Process configuration.

Settings come from built-in defaults, then an ini file (section
``[app:timemachine]``), then environment variables; later sources win.
"""
import os
import sys
from collections import namedtuple
from configparser import ConfigParser

from timemachine.delivery import DEFAULT_SUBJECT
from timemachine.delivery import DEFAULT_THREAD_ID
from timemachine.interfaces import ConfigurationError
from timemachine.scheduler import DEFAULT_SCHEDULE
from timemachine.scheduler import DEFAULT_TIMEZONE

SECTION = 'app:timemachine'

Configuration = namedtuple('Configuration', [
    'smtp_host',
    'smtp_port',
    'smtp_user',
    'smtp_pass',
    'to_email',
    'from_email',
    'subject',
    'messages_file',
    'cron_schedule',
    'timezone',
    'thread_id',
    'force_tls',
    'no_tls',
    'ssl',
    'debug_smtp',
])

# (name, environment variable, default)
SETTINGS = (
    ('smtp_host', 'SMTP_HOST', None),
    ('smtp_port', 'SMTP_PORT', '587'),
    ('smtp_user', 'SMTP_USER', None),
    ('smtp_pass', 'SMTP_PASS', None),
    ('to_email', 'TO_EMAIL', None),
    ('from_email', 'FROM_EMAIL', None),
    ('subject', 'EMAIL_SUBJECT', DEFAULT_SUBJECT),
    ('messages_file', 'MESSAGES_FILE', 'messages.json'),
    ('cron_schedule', 'CRON_SCHEDULE', DEFAULT_SCHEDULE),
    ('timezone', 'SCHEDULE_TIMEZONE', DEFAULT_TIMEZONE),
    ('thread_id', 'THREAD_ID', DEFAULT_THREAD_ID),
    ('force_tls', 'SMTP_FORCE_TLS', 'false'),
    ('no_tls', 'SMTP_NO_TLS', 'false'),
    ('ssl', 'SMTP_SSL', 'false'),
    ('debug_smtp', 'SMTP_DEBUG', 'false'),
)

REQUIRED = ('smtp_host', 'smtp_user', 'smtp_pass', 'to_email')

BOOLEANS = ('force_tls', 'no_tls', 'ssl', 'debug_smtp')


def boolean(s):
    s = str(s).lower()
    return s.startswith("t") or s.startswith("y") or s.startswith("1")


def default_config_path():
    # Look in etc directory relative to bin directory of current
    # Python executable for "timemachine.ini".
    exe = sys.executable
    root = os.path.dirname(os.path.dirname(exe))
    return os.path.join(root, "etc", "timemachine.ini")


def read_ini(path):
    """Return the settings found in the ``[app:timemachine]`` section."""
    config = ConfigParser(interpolation=None)
    if not config.read(path):
        raise ConfigurationError('Cannot read config file %s' % path)
    if not config.has_section(SECTION):
        return {}
    return dict(config.items(SECTION))


def load_config(path=None, environ=None, require_transport=True):
    """Build the immutable `Configuration`.

    `path` names an ini file; without one the default location is used
    when it exists.  `environ` defaults to ``os.environ``.  With
    `require_transport` missing SMTP settings or recipient are an error.
    """
    if environ is None:
        environ = os.environ
    if path is None:
        path = default_config_path()
        if not os.path.exists(path):
            path = None
    ini = read_ini(path) if path is not None else {}

    values = {}
    for name, envvar, default in SETTINGS:
        value = environ.get(envvar) or ini.get(name) or default
        values[name] = value

    if require_transport:
        for name, envvar, default in SETTINGS:
            if name in REQUIRED and not values[name]:
                raise ConfigurationError('%s is required' % envvar)

    try:
        values['smtp_port'] = int(values['smtp_port'])
    except ValueError:
        raise ConfigurationError('SMTP_PORT must be a number, not %r'
                                 % values['smtp_port'])
    for name in BOOLEANS:
        values[name] = boolean(values[name])
    if values['force_tls'] and values['no_tls']:
        raise ConfigurationError(
            'SMTP_FORCE_TLS and SMTP_NO_TLS are mutually exclusive')
    if not values['from_email']:
        values['from_email'] = values['smtp_user']

    return Configuration(**values)
