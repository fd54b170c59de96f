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
"""`timemachine` interfaces

Reminders travel through the system as follows:

- A producer (usually a web form) hands a piece of text to the message
  queue (`IMessageQueue`), either directly or through a transactional
  writer (`IQueueWriter`) that only appends once the surrounding
  transaction commits.

- The queue is a single JSON document in the filesystem.  Every mutation
  rewrites the whole document before it returns, so the queue survives
  application restarts or crashes and no reminder is lost.

- A scheduler (`IScheduler`) fires the dispatcher (`IDispatcher`) once when
  it starts and then whenever a cron expression matches in a fixed
  timezone.

- The dispatcher pops the oldest reminder and hands it to a delivery
  (`IDeliveryPort`), which wraps it in an e-mail threaded under a stable
  conversation id and sends it using a mailer (`IMailer`).  If sending
  fails the reminder goes back to the tail of the queue and is retried on
  the next fire.
"""

from zope.interface import Attribute, Interface


class StorageError(IOError):
    """The persisted queue document could not be read or written."""


class QueueEmpty(LookupError):
    """A message was requested from an empty queue."""


class DeliveryError(Exception):
    """The mail transport did not accept a message."""


class ConfigurationError(ValueError):
    """The process configuration is incomplete or invalid."""


class IMessageQueue(Interface):
    """Ordered, disk-persisted sequence of pending messages.
    """

    path = Attribute("Filesystem path of the persisted document.")

    def add(message):
        """Append `message` (text) to the tail of the queue.

        The persisted document reflects the new message before this
        returns.  Raises `StorageError` if it could not be written.
        """

    def pop():
        """Remove and return the message at the head of the queue.

        Raises `QueueEmpty` if there is nothing to return, and
        `StorageError` if the shortened queue could not be written (the
        message is then still queued).
        """

    def is_empty():
        """Return True if no message is pending."""

    def snapshot():
        """Return a copy of the pending messages, oldest first."""


class IQueueWriter(Interface):
    """Transaction-aware producer side of the queue.
    """

    transaction_manager = Attribute("The transaction manager to use.")

    def add(message):
        """Queue a message when the current transaction commits.

        Raises `ValueError` for anything that is not non-empty text.
        """


class IMailer(Interface):
    """Handles synchronous mail delivery.
    """

    def send(fromaddr, toaddrs, message):
        """Send an email message.

        `fromaddr` is the sender address (unicode string),

        `toaddrs` is a sequence of recipient addresses (unicode strings).

        `message` is a `Message` object from the stdlib
        `email.message` module.

        Messages are sent immediately.
        """


class IDeliveryPort(Interface):
    """Send one reminder to the configured recipient.
    """

    def send(message):
        """Deliver the text `message`.

        Returns only once the relay accepted it; any failure is raised as
        `DeliveryError`.
        """


class IDispatcher(Interface):
    """Moves one message from the queue to the delivery.
    """

    def run_once():
        """Run one dispatch cycle and return its outcome.

        Never raises for the expected conditions of a running process
        (empty queue, failed delivery).
        """


class IScheduler(Interface):
    """Fires a dispatcher at startup and on a cron schedule.
    """

    running = Attribute("True between `start` and `stop`.")

    def start():
        """Dispatch once immediately, then start the recurring schedule."""

    def stop(wait=True):
        """Stop the recurring schedule."""
