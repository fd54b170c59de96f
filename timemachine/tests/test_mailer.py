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
import unittest


class TestSMTPMailer(unittest.TestCase):

    def _getTargetClass(self):
        from timemachine.mailer import SMTPMailer
        return SMTPMailer

    def _makeOne(self, port=None, ehlo_status=200, extns=set(['starttls'])):
        klass = self._getTargetClass()
        if port is None:
            mailer = klass()
        else:
            mailer = klass('localhost', port)
        smtp = _makeSMTP(ehlo_status, extns)
        mailer.smtp = smtp
        return mailer, smtp

    def _makeMessage(self):
        from email.message import Message
        msg = Message()
        msg['Headers'] = 'headers'
        msg.set_payload('bodybodybody\n-- \nsig\n')
        return msg

    def test_class_conforms_to_IMailer(self):
        from zope.interface.verify import verifyClass
        from timemachine.interfaces import IMailer
        verifyClass(IMailer, self._getTargetClass())

    def test_default_port(self):
        mailer = self._getTargetClass()()
        self.assertEqual(mailer.port, 587)

    def test_send(self):
        for run in (1, 2):
            if run == 2:
                mailer, smtp = self._makeOne(port=25)
            else:
                mailer, smtp = self._makeOne()
            fromaddr = 'me@example.com'
            toaddrs = ('you@example.com',)
            msg = self._makeMessage()
            mailer.send(fromaddr, toaddrs, msg)
            self.assertEqual(len(smtp._inst), 1)
            inst = smtp._inst[0]
            self.assertEqual(inst.fromaddr, fromaddr)
            self.assertEqual(inst.toaddrs, toaddrs)
            self.assertEqual(inst.msgtext, msg.as_bytes())
            self.assertTrue(inst.tls)
            self.assertTrue(inst.quitted)
            self.assertTrue(inst.closed)

    def test_send_passes_timeout(self):
        mailer, smtp = self._makeOne()
        mailer.timeout = 3
        mailer.send('me@example.com', ('you@example.com',),
                    self._makeMessage())
        self.assertEqual(smtp._inst[0].params, {'timeout': 3})

    def test_send_w_non_message(self):
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        mailer, smtp = self._makeOne()
        self.assertRaises(ValueError, mailer.send, fromaddr, toaddrs, b'')
        self.assertEqual(smtp._inst, [])

    def test_fail_ehlo(self):
        mailer, smtp = self._makeOne(ehlo_status=100)
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        self.assertRaises(RuntimeError, mailer.send,
                          fromaddr, toaddrs, self._makeMessage())
        self.assertTrue(smtp._inst[0].closed)

    def test_no_tls(self):
        mailer, smtp = self._makeOne()
        mailer.no_tls = True
        mailer.send('me@example.com', ('you@example.com',),
                    self._makeMessage())
        self.assertFalse(smtp._inst[0].tls)

    def test_tls_required_not_available(self):
        mailer, smtp = self._makeOne(extns=set())
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        mailer.force_tls = True
        self.assertRaises(RuntimeError, mailer.send,
                          fromaddr, toaddrs, self._makeMessage())
        self.assertTrue(smtp._inst[0].closed)

    def test_ssl_required_not_available(self):
        mailer, smtp = self._makeOne(extns=set())
        mailer.ssl = True
        mailer.smtp_ssl = None
        self.assertRaises(RuntimeError, mailer.smtp_factory)

    def test_ssl_required_and_available(self):
        mailer, smtp = self._makeOne(extns=set())
        mailer.ssl = True
        mailer.smtp_ssl = smtp
        result = mailer.smtp_factory()
        self.assertTrue(result.is_factory)

    def test_ssl_does_not_starttls(self):
        mailer, smtp = self._makeOne()
        mailer.ssl = True
        mailer.smtp_ssl = smtp
        mailer.send('me@example.com', ('you@example.com',),
                    self._makeMessage())
        self.assertFalse(smtp._inst[0].tls)

    def test_send_auth(self):
        from email import message_from_string
        mailer, smtp = self._makeOne()
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        headers = 'Headers: headers'
        body = 'bodybodybody\n-- \nsig\n'
        msgtext = headers + '\n\n' + body
        msg = message_from_string(msgtext)
        mailer.username = 'foo'
        mailer.password = 'evil'
        mailer.hostname = 'spamrelay'
        mailer.port = 31337
        mailer.send(fromaddr, toaddrs, msg)
        self.assertEqual(len(smtp._inst), 1)
        inst = smtp._inst[0]
        self.assertEqual(inst.username, 'foo')
        self.assertEqual(inst.password, 'evil')
        self.assertEqual(inst.hostname, 'spamrelay')
        self.assertEqual(inst.port, '31337')
        self.assertEqual(inst.fromaddr, fromaddr)
        self.assertEqual(inst.toaddrs, toaddrs)
        self.assertTrue(body.encode('ascii') in inst.msgtext)
        self.assertTrue(headers.encode('ascii') in inst.msgtext)
        self.assertTrue(inst.quitted)
        self.assertTrue(inst.closed)

    def test_send_auth_rejected(self):
        import smtplib
        mailer, smtp = self._makeOne()
        smtp.fail_login = True
        mailer.username = 'foo'
        mailer.password = 'wrong'
        self.assertRaises(smtplib.SMTPAuthenticationError, mailer.send,
                          'me@example.com', ('you@example.com',),
                          self._makeMessage())
        inst = smtp._inst[0]
        self.assertFalse(hasattr(inst, 'msgtext'))
        self.assertTrue(inst.closed)

    def test_send_failQuit(self):
        from email import message_from_string
        mailer, smtp = self._makeOne()
        mailer.smtp.fail_on_quit = True
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        headers = 'Headers: headers'
        body = 'bodybodybody\n-- \nsig\n'
        msgtext = headers + '\n\n' + body
        msg = message_from_string(msgtext)
        mailer.send(fromaddr, toaddrs, msg)
        self.assertEqual(len(smtp._inst), 1)
        inst = smtp._inst[0]
        self.assertEqual(inst.fromaddr, fromaddr)
        self.assertEqual(inst.toaddrs, toaddrs)
        self.assertTrue(body.encode('ascii') in inst.msgtext)
        self.assertTrue(headers.encode('ascii') in inst.msgtext)
        self.assertTrue(not inst.quitted)
        self.assertTrue(inst.closed)

    def test_send_disconnected_on_quit(self):
        import smtplib
        mailer, smtp = self._makeOne()
        mailer.smtp.quit_error = smtplib.SMTPServerDisconnected('gone')
        # delivered already; must not be reported as a failure
        mailer.send('me@example.com', ('you@example.com',),
                    self._makeMessage())
        inst = smtp._inst[0]
        self.assertTrue(b'bodybodybody' in inst.msgtext)
        self.assertTrue(not inst.quitted)
        self.assertTrue(inst.closed)

    def test_send_socket_error_on_quit(self):
        mailer, smtp = self._makeOne()
        mailer.smtp.quit_error = ConnectionResetError('reset by peer')
        mailer.send('me@example.com', ('you@example.com',),
                    self._makeMessage())
        self.assertTrue(smtp._inst[0].closed)

    def test_without_debug(self):
        klass = self._getTargetClass()
        mailer = klass(debug_smtp=False)
        mailer.smtp = _makeSMTP()
        connection = mailer.smtp_factory()
        self.assertFalse(connection.debuglevel)

    def test_with_debug(self):
        klass = self._getTargetClass()
        mailer = klass(debug_smtp=True)
        mailer.smtp = _makeSMTP()
        connection = mailer.smtp_factory()
        self.assertTrue(connection.debuglevel)


class TestSMTPMailerWithNoEHLO(TestSMTPMailer):

    def _makeOne(self, port=None, extns=set(['starttls'])):
        klass = self._getTargetClass()
        mailer = klass()
        smtp = _makeSMTPNoEHLO(extns)
        mailer.smtp = smtp
        return mailer, smtp

    def test_send(self):
        mailer, smtp = self._makeOne()
        msg = self._makeMessage()
        mailer.send('me@example.com', ('you@example.com',), msg)
        self.assertEqual(smtp._inst[0].msgtext, msg.as_bytes())

    def test_send_auth(self):
        mailer, smtp = self._makeOne()
        fromaddr = 'me@example.com'
        toaddrs = ('you@example.com',)
        mailer.username = 'foo'
        mailer.password = 'evil'
        self.assertRaises(RuntimeError, mailer.send,
                          fromaddr, toaddrs, self._makeMessage())

    def test_fail_ehlo(self):
        # This test requires ESMTP, which we're intentionally not enabling
        # here, so pass.
        pass

    def test_send_auth_rejected(self):
        # Login is never attempted without ESMTP.
        pass

    def test_send_passes_timeout(self):
        pass

    def test_no_tls(self):
        pass

    def test_ssl_does_not_starttls(self):
        pass

    def test_tls_required_not_available(self):
        mailer, smtp = self._makeOne(extns=set())
        mailer.force_tls = True
        self.assertRaises(RuntimeError, mailer.send,
                          'me@example.com', ('you@example.com',),
                          self._makeMessage())


def _makeSMTP(ehlo_status=200, extns=set(['starttls'])):
    class SMTP(object):
        is_factory = True
        fail_on_quit = False
        quit_error = None
        fail_login = False
        _inst = []

        def __init__(self, h, p, **params):
            self.hostname = h
            self.port = p
            self.quitted = False
            self.closed = False
            self.tls = False
            self.debuglevel = 0
            self.params = params
            SMTP._inst.append(self)

        def set_debuglevel(self, lvl):
            self.debuglevel = bool(lvl)

        def sendmail(self, f, t, m):
            self.fromaddr = f
            self.toaddrs = t
            self.msgtext = m

        def login(self, username, password):
            import smtplib
            if self.fail_login:
                raise smtplib.SMTPAuthenticationError(535, 'Bad credentials')
            self.username = username
            self.password = password

        def quit(self):
            from ssl import SSLError
            if self.quit_error is not None:
                raise self.quit_error
            if self.fail_on_quit:
                raise SSLError("dang")
            self.quitted = True
            self.close()

        def close(self):
            self.closed = True

        def has_extn(self, ext):
            return ext in self.extns

        def ehlo(self):
            self.does_esmtp = True
            return (self.ehlo_status, 'Hello, I am your stupid MTA mock')

        helo = ehlo

        def starttls(self):
            self.tls = True

    SMTP.ehlo_status = ehlo_status
    SMTP.extns = extns
    return SMTP


def _makeSMTPNoEHLO(extns):
    SMTP = _makeSMTP(None, extns)

    class SMTPWithNoEHLO(SMTP):
        does_esmtp = False

        def helo(self):
            return (200, 'Hello, I am your stupid MTA mock')

        def ehlo(self):
            return (502, 'I don\'t understand EHLO')
    return SMTPWithNoEHLO
