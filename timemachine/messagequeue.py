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
Durable FIFO queue of reminder texts kept in a single JSON document.
"""

import errno
import io
import json
import os
import random
import socket
import threading
import time

from zope.interface import implementer
from timemachine.interfaces import IMessageQueue
from timemachine.interfaces import QueueEmpty
from timemachine.interfaces import StorageError


@implementer(IMessageQueue)
class MessageQueue(object):
    """See `timemachine.interfaces.IMessageQueue`"""

    indent = 4

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()
        self._messages = self._load()

    def __len__(self):
        with self._lock:
            return len(self._messages)

    def _load(self):
        try:
            with io.open(self.path, 'r', encoding='utf-8') as f:
                data = f.read()
        except (IOError, OSError) as e:
            if e.errno != errno.ENOENT:
                raise StorageError('Error reading messages file %s: %s'
                                   % (self.path, e))
            # first run, materialize the empty document
            messages = []
            self._save(messages)
            return messages
        except UnicodeDecodeError as e:
            raise StorageError('Error reading messages file %s: %s'
                               % (self.path, e))

        try:
            messages = json.loads(data)
        except ValueError as e:
            raise StorageError('%s is not a message queue document: %s'
                               % (self.path, e))
        if (not isinstance(messages, list) or
            not all(isinstance(m, str) for m in messages)):
            raise StorageError('%s is not a message queue document: '
                               'expected an array of strings' % self.path)
        for message in messages:
            if not _encodable(message):
                raise StorageError('%s is not a message queue document: '
                                   '%r is not valid text'
                                   % (self.path, message))
        return messages

    def _save(self, messages):
        try:
            data = json.dumps(messages, indent=self.indent,
                              ensure_ascii=False).encode('utf-8')
        except UnicodeEncodeError as e:
            raise StorageError('Error writing messages file %s: %s'
                               % (self.path, e))
        head, tail = os.path.split(os.path.abspath(self.path))
        pid = os.getpid()
        host = socket.gethostname()
        randmax = 0x7fffffff
        counter = 0
        while True:
            unique = '.%s.%d.%d.%s.%d' % (tail, int(time.time()), pid, host,
                                         random.randrange(randmax))
            tmp_filename = os.path.join(head, unique)
            try:
                fd = os.open(tmp_filename,
                             os.O_CREAT|os.O_EXCL|os.O_WRONLY,
                             0o644
                             )
            except OSError as e:
                if e.errno != errno.EEXIST:
                    raise StorageError('Error writing messages file %s: %s'
                                       % (self.path, e))
                counter += 1
                if counter >= 1000:
                    raise StorageError('Failed to create unique file name'
                                       ' in %s' % head)
            else:
                break

        try:
            with io.open(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # the document is replaced whole or not at all
            os.replace(tmp_filename, self.path)
        except BaseException as e:
            try:
                os.remove(tmp_filename)
            except OSError:
                pass
            if isinstance(e, (IOError, OSError)):
                raise StorageError('Error writing messages file %s: %s'
                                   % (self.path, e))
            raise

    def add(self, message):
        "See `timemachine.interfaces.IMessageQueue`"
        if not isinstance(message, str):
            raise ValueError('Message must be text, not %r'
                             % type(message).__name__)
        if not _encodable(message):
            raise ValueError('Message is not valid text: %r' % message)
        with self._lock:
            messages = self._messages + [message]
            self._save(messages)
            self._messages = messages

    def pop(self):
        "See `timemachine.interfaces.IMessageQueue`"
        with self._lock:
            if not self._messages:
                raise QueueEmpty('queue is empty')
            message = self._messages[0]
            messages = self._messages[1:]
            self._save(messages)
            self._messages = messages
            return message

    def is_empty(self):
        "See `timemachine.interfaces.IMessageQueue`"
        with self._lock:
            return not self._messages

    def snapshot(self):
        "See `timemachine.interfaces.IMessageQueue`"
        with self._lock:
            return list(self._messages)


def _encodable(message):
    # lone surrogates decode from JSON escapes but cannot be written back
    try:
        message.encode('utf-8')
    except UnicodeEncodeError:
        return False
    return True
