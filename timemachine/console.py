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
import sys

from apscheduler.schedulers.blocking import BlockingScheduler
from dotenv import load_dotenv
import transaction

from timemachine.config import load_config
from timemachine.delivery import ReminderDelivery
from timemachine.dispatch import Dispatcher
from timemachine.interfaces import ConfigurationError
from timemachine.interfaces import StorageError
from timemachine.mailer import SMTPMailer
from timemachine.messagequeue import MessageQueue
from timemachine.producer import TransactionalQueueWriter
from timemachine.scheduler import Scheduler

log = logging.getLogger("timemachine")


def _log_error(msg):
    sys.stderr.write(msg + '\n')


class ConsoleApp(object):
    """Runs the reminder queue from the console.

    Configuration is read from the ini file and the environment (including a
    ``.env`` file in the working directory); see `timemachine.config`.
    """
    _usage = """%(script_name)s [OPTIONS] [COMMAND]

    COMMANDS:
        serve               Send one message now, then keep sending on the
                            configured cron schedule until interrupted.
                            This is the default.

        send                Send the oldest queued message and exit.

        add <text>          Add a message to the tail of the queue.

        list                Show the queued messages, oldest first.

    OPTIONS:
        --config <inifile>  Get configuration from specified ini file.  Will
                            look for etc/timemachine.ini, by default, where
                            etc is parallel to the bin directory where the
                            python executable is found.

        --debug-smtp        Enable SMTP debug output (STDERR)
    """
    commands = ('serve', 'send', 'add', 'list')

    _error = False
    config_path = None
    debug_smtp = False
    command = 'serve'
    message = None

    scheduler_factory = BlockingScheduler  # allow replacement for testing.

    def __init__(self, argv=sys.argv, environ=None, out=None):
        self.script_name = argv[0]
        self.environ = environ
        self.out = out if out is not None else sys.stdout
        self._process_args(argv[1:])

    def main(self):
        if self._error:
            return 2
        try:
            config = load_config(self.config_path, self.environ,
                                 require_transport=self.command in
                                 ('serve', 'send'))
            queue = MessageQueue(config.messages_file)
            return getattr(self, 'do_' + self.command)(config, queue)
        except (ConfigurationError, StorageError) as e:
            _log_error("%s: %s" % (self.script_name, e))
            return 1

    def make_dispatcher(self, config, queue):
        mailer = SMTPMailer(config.smtp_host,
                            config.smtp_port,
                            config.smtp_user,
                            config.smtp_pass,
                            config.no_tls,
                            config.force_tls,
                            config.ssl,
                            config.debug_smtp or self.debug_smtp)
        delivery = ReminderDelivery(mailer,
                                    config.from_email,
                                    config.to_email,
                                    config.subject,
                                    config.thread_id)
        return Dispatcher(queue, delivery)

    def do_serve(self, config, queue):
        log.info("SMTP Host: %s", config.smtp_host)
        log.info("SMTP Port: %s", config.smtp_port)
        log.info("SMTP User: %s", config.smtp_user)
        log.info("To Email: %s", config.to_email)
        log.info("Messages File: %s", config.messages_file)
        log.info("Message queue initialized with %d messages", len(queue))
        scheduler = Scheduler(self.make_dispatcher(config, queue),
                              config.cron_schedule,
                              config.timezone,
                              scheduler_factory=self.scheduler_factory)
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            pass
        finally:
            scheduler.stop(wait=False)
        return 0

    def do_send(self, config, queue):
        result = self.make_dispatcher(config, queue).run_once()
        self.out.write('%s\n' % result)
        return 0

    def do_add(self, config, queue):
        writer = TransactionalQueueWriter(queue)
        try:
            with transaction.manager:
                writer.add(self.message)
        except ValueError as e:
            _log_error("%s: %s" % (self.script_name, e))
            return 1
        self.out.write('Message added, %d in queue\n' % len(queue))
        return 0

    def do_list(self, config, queue):
        messages = queue.snapshot()
        self.out.write('Current Queue (%d messages)\n' % len(messages))
        for i, message in enumerate(messages, 1):
            self.out.write('%3d. %s\n' % (i, message))
        return 0

    def _process_args(self, args):
        log_usage = False
        got_command = False
        while args:
            arg = args.pop(0)
            if arg == "--config":
                if not args:
                    log_usage = True
                else:
                    self.config_path = args.pop(0)

            elif arg == "--debug-smtp":
                self.debug_smtp = True

            elif arg.startswith("-") or got_command:
                log_usage = True

            elif arg in self.commands:
                self.command = arg
                got_command = True
                if arg == 'add':
                    if not args:
                        log_usage = True
                    else:
                        self.message = args.pop(0)

            else:
                log_usage = True

        if log_usage:
            self._error_usage()

    def _error_usage(self):
        _log_error(self._usage % {"script_name": self.script_name})
        self._error = True


def run_console(): # pragma NO COVER
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    load_dotenv()
    app = ConsoleApp()
    sys.exit(app.main())

if __name__ == "__main__": # pragma NO COVER
    run_console()
