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
Transactional producer side of the message queue.

A front end handling a request adds reminders through a
`TransactionalQueueWriter`; they reach the queue only if the request's
transaction commits.
"""

from zope.interface import implementer
from timemachine.interfaces import IQueueWriter
import transaction
from transaction.interfaces import ISavepointDataManager
from transaction.interfaces import IDataManagerSavepoint


@implementer(ISavepointDataManager)
class PendingMessages(object):
    """Messages added to one queue during one transaction.

    They are appended to the queue, oldest first, when the transaction
    finishes, and forgotten when it aborts.  Rolling back to a savepoint
    forgets the messages added after it.
    """

    def __init__(self, queue, transaction_manager=None):
        self.queue = queue
        if transaction_manager is None:
            transaction_manager = transaction.manager
        self.transaction_manager = transaction_manager
        self.messages = []

    def append(self, message):
        self.messages.append(message)

    def abort(self, trans):
        del self.messages[:]

    def tpc_begin(self, trans):
        pass

    def commit(self, trans):
        pass

    def tpc_vote(self, trans):
        pass

    def tpc_finish(self, trans):
        messages, self.messages = self.messages, []
        for message in messages:
            self.queue.add(message)

    def tpc_abort(self, trans):
        del self.messages[:]

    def sortKey(self):
        return 'timemachine.producer:%s' % self.queue.path

    def savepoint(self):
        return PendingMessagesSavepoint(self)


@implementer(IDataManagerSavepoint)
class PendingMessagesSavepoint(object):

    def __init__(self, pending):
        self.pending = pending
        self.length = len(pending.messages)

    def rollback(self):
        del self.pending.messages[self.length:]


@implementer(IQueueWriter)
class TransactionalQueueWriter(object):

    def __init__(self, queue, transaction_manager=None):
        self.queue = queue
        if transaction_manager is None:
            transaction_manager = transaction.manager
        self.transaction_manager = transaction_manager

    def pending(self, trans=None):
        """The `PendingMessages` of `trans`, joining it on first use."""
        if trans is None:
            trans = self.transaction_manager.get()
        try:
            return trans.data(self)
        except KeyError:
            pending = PendingMessages(self.queue, self.transaction_manager)
            trans.join(pending)
            trans.set_data(self, pending)
            return pending

    def add(self, message):
        if not isinstance(message, str):
            raise ValueError('Message must be text')
        if not message:
            raise ValueError('Message cannot be empty')
        try:
            message.encode('utf-8')
        except UnicodeEncodeError:
            raise ValueError('Message is not valid text: %r' % message)
        self.pending().append(message)
