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
Reminder delivery

Turns a reminder text into an e-mail addressed to the one configured
recipient and hands it to a mailer.  Every reminder is sent as a reply in the
same conversation so that a mail client groups them together.
"""
import logging
import smtplib

from email.charset import Charset, QP
from email.header import Header
from email.message import Message
from email.utils import formatdate
from email.utils import make_msgid

from zope.interface import implementer
from timemachine.interfaces import DeliveryError
from timemachine.interfaces import IDeliveryPort

DEFAULT_SUBJECT = 'Daily Reminder'
DEFAULT_THREAD_ID = '<daily-reminder@timemachine>'

log = logging.getLogger(__name__)

_utf8 = Charset('utf-8')
_utf8.body_encoding = QP


def make_message(fromaddr, toaddr, subject, text, thread_id=DEFAULT_THREAD_ID):
    """Build the e-mail carrying `text`."""
    message = Message()
    message['MIME-Version'] = '1.0'
    message['From'] = fromaddr
    message['To'] = toaddr
    message['Subject'] = Header(subject, 'utf-8')
    message['Date'] = formatdate()
    message['Message-Id'] = make_msgid('timemachine')
    if thread_id:
        message['References'] = thread_id
        message['In-Reply-To'] = thread_id
    message.set_payload(text, _utf8)
    return message


@implementer(IDeliveryPort)
class ReminderDelivery(object):

    # transport failures; everything else is a programming error
    transport_errors = (smtplib.SMTPException, OSError, RuntimeError)

    def __init__(self, mailer, fromaddr, toaddr,
                 subject=DEFAULT_SUBJECT, thread_id=DEFAULT_THREAD_ID):
        self.mailer = mailer
        self.fromaddr = fromaddr
        self.toaddr = toaddr
        self.subject = subject
        self.thread_id = thread_id

    def send(self, message):
        email = make_message(self.fromaddr, self.toaddr, self.subject,
                             message, self.thread_id)
        log.info("Attempting to send reminder %s to %s",
                 email['Message-Id'], self.toaddr)
        try:
            self.mailer.send(self.fromaddr, (self.toaddr,), email)
        except self.transport_errors as e:
            raise DeliveryError('Could not send reminder to %s: %s'
                                % (self.toaddr, e)) from e
        log.info("Reminder %s sent to %s", email['Message-Id'], self.toaddr)
