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
from email.message import Message
from smtplib import SMTP
from smtplib import SMTP_SSL
from smtplib import SMTPException

from zope.interface import implementer
from timemachine.interfaces import IMailer


@implementer(IMailer)
class SMTPMailer(object):

    smtp = SMTP  # allow replacement for testing.
    smtp_ssl = SMTP_SSL # allow replacement for testing.

    def __init__(self, hostname='localhost', port=587,
                 username=None, password=None,
                 no_tls=False, force_tls=False, ssl=False, debug_smtp=False,
                 timeout=10):
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.force_tls = force_tls
        self.no_tls = no_tls
        self.ssl = ssl
        self.debug_smtp = debug_smtp
        self.timeout = timeout

    def smtp_factory(self):
        hostname = self.hostname
        port = str(self.port)
        if self.ssl:
            if self.smtp_ssl is None:
                raise RuntimeError('No SSL available, cannot send via SSL')
            connection = self.smtp_ssl(hostname, port, timeout=self.timeout)
        else:
            connection = self.smtp(hostname, port, timeout=self.timeout)
        connection.set_debuglevel(self.debug_smtp)
        return connection

    def send(self, fromaddr, toaddrs, message):
        if not isinstance(message, Message):
            raise ValueError(
               'Message must be instance of email.message.Message')
        msgtext = message.as_bytes()

        connection = self.smtp_factory()
        try:
            self._send(connection, fromaddr, toaddrs, msgtext)
        except BaseException:
            connection.close()
            raise

        try:
            connection.quit()
        except (SMTPException, OSError):
            # already accepted, something weird happened while quitting
            connection.close()

    def _send(self, connection, fromaddr, toaddrs, msgtext):
        # send EHLO
        code, response = connection.ehlo()
        if code < 200 or code >= 300:
            code, response = connection.helo()
            if code < 200 or code >= 300:
                raise RuntimeError(
                        'Error sending HELO to the SMTP server '
                        '(code=%s, response=%s)' % (code, response))

        # encryption support
        have_tls = connection.has_extn('starttls')
        if not have_tls and self.force_tls and not self.ssl:
            raise RuntimeError('TLS is not available but TLS is required')

        if have_tls and not self.no_tls and not self.ssl:
            connection.starttls()
            connection.ehlo()

        if connection.does_esmtp:
            if self.username is not None and self.password is not None:
                connection.login(self.username, self.password)
        elif self.username:
            raise RuntimeError(
                    'Mailhost does not support ESMTP but a username '
                    'is configured')

        connection.sendmail(fromaddr, toaddrs, msgtext)
