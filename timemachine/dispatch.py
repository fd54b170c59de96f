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
import logging

from zope.interface import implementer
from timemachine.interfaces import IDispatcher
from timemachine.interfaces import QueueEmpty
from timemachine.interfaces import StorageError

# One dispatch cycle, for each fire of the scheduler:
#
#               ( queue empty? )---------------------------+
#                      |                              yes  |
#                      | no                                |
#                      V                                   |
#               ( pop the head )---------------------------+
#                      |             queue emptied by      |
#                      |             someone else          V
#                      |                              ( EMPTY )
#                      |-----------------------------> ( FAILED )
#                      |  document could not be written,
#                      |  the message stays at the head
#                      V
#               ( send message )-----------> ( SENT )
#                      |             accepted
#                      | any error
#                      V
#          ( add message to the tail )------> ( REQUEUED )
#                      |
#                      | document could not be written
#                      V
#                   ( LOST )
#
# A message that is never accepted keeps going around the queue once per
# fire; there is no backoff and no retry limit.


class DispatchResult(object):
    """Outcome of one `Dispatcher.run_once` call."""
    EMPTY = 'empty'
    SENT = 'sent'
    REQUEUED = 'requeued'
    FAILED = 'failed'
    LOST = 'lost'


@implementer(IDispatcher)
class Dispatcher(object):
    log = logging.getLogger("Dispatcher")

    def __init__(self, queue, delivery):
        self.queue = queue
        self.delivery = delivery

    def run_once(self):
        if self.queue.is_empty():
            self.log.info("No messages left in the queue")
            return DispatchResult.EMPTY

        try:
            message = self.queue.pop()
        except QueueEmpty:
            self.log.info("Queue was emptied before a message could be "
                          "taken from it")
            return DispatchResult.EMPTY
        except StorageError:
            self.log.error("Failed to pop message from queue",
                           exc_info=True)
            return DispatchResult.FAILED

        try:
            self.delivery.send(message)
        except Exception:
            self.log.error("Failed to send message, returning it to the "
                           "queue", exc_info=True)
            # NB: the message goes to the tail, behind anything queued
            # since; the order of pending messages changes.
            try:
                self.queue.add(message)
            except StorageError:
                self.log.error("Failed to add message back to queue, "
                               "message lost: %r", message, exc_info=True)
                return DispatchResult.LOST
            return DispatchResult.REQUEUED

        self.log.info("Successfully sent and removed message from queue")
        return DispatchResult.SENT
