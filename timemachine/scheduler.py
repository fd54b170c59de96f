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
Cron-style scheduling of dispatch cycles in a fixed timezone.
"""
import logging
import re
from datetime import datetime
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from zope.interface import implementer
from timemachine.interfaces import ConfigurationError
from timemachine.interfaces import IScheduler

DEFAULT_SCHEDULE = '0 7 * * *'  # 7 AM daily
DEFAULT_TIMEZONE = 'Asia/Muscat'

DESCRIPTORS = {
    '@yearly': '0 0 1 1 *',
    '@annually': '0 0 1 1 *',
    '@monthly': '0 0 1 * *',
    '@weekly': '0 0 * * 0',
    '@daily': '0 0 * * *',
    '@midnight': '0 0 * * *',
    '@hourly': '0 * * * *',
}

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1,
    'm': 60,
    'h': 3600,
}
_DURATION_PART = re.compile(
    r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')
_DURATION = re.compile(r'(?:%s)+' % _DURATION_PART.pattern)

# crontab numbering, 0 and 7 are both Sunday
_WEEKDAYS = ('sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')

log = logging.getLogger(__name__)


def get_timezone(name):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError('Unknown timezone %r: %s' % (name, e))


def _day_of_week(field):
    """Translate a numeric crontab day-of-week field to weekday names.

    APScheduler counts weekdays from Monday, crontab from Sunday; names
    mean the same thing to both.
    """
    if field in ('*', '?'):
        return '*'
    if not any(c.isdigit() for c in field):
        return field
    days = []
    for part in field.split(','):
        base, _, step = part.partition('/')
        if base == '*':
            first, last = 0, 6
        elif '-' in base:
            first, _, last = base.partition('-')
            first, last = int(first), int(last)
        else:
            first = int(base)
            last = 7 if step else first
        step = int(step) if step else 1
        if not (0 <= first <= 7 and 0 <= last <= 7) or first > last or step < 1:
            raise ValueError('Invalid day of week %r' % part)
        for day in range(first, last + 1, step):
            name = _WEEKDAYS[day]
            if name not in days:
                days.append(name)
    return ','.join(days)


def make_trigger(expression, timezone):
    """Parse a crontab expression into an APScheduler trigger.

    Five fields, or one of the descriptors in `DESCRIPTORS`, or
    ``@every <duration>``.  As in crontab, when both the day of month and
    the day of week are restricted a day matching either one fires.

    Raises `ConfigurationError` for malformed expressions and unknown
    timezones.
    """
    tz = get_timezone(timezone)
    expression = expression.strip()
    if expression.startswith('@every '):
        return IntervalTrigger(seconds=_every(expression), timezone=tz)
    fields = DESCRIPTORS.get(expression, expression).split()
    if len(fields) != 5:
        raise ConfigurationError(
            'Wrong number of fields in cron expression %r; got %d, '
            'expected 5' % (expression, len(fields)))
    minute, hour, day, month, day_of_week = fields
    if day == '?':
        day = '*'
    kw = dict(minute=minute, hour=hour, month=month, timezone=tz)
    try:
        day_of_week = _day_of_week(day_of_week)
        if day == '*' or day_of_week == '*':
            return CronTrigger(day=day, day_of_week=day_of_week, **kw)
        return OrTrigger([CronTrigger(day=day, day_of_week='*', **kw),
                          CronTrigger(day='*', day_of_week=day_of_week,
                                      **kw)])
    except ValueError as e:
        raise ConfigurationError('Invalid cron expression %r: %s'
                                 % (expression, e))


def _every(expression):
    """Whole seconds between fires of ``@every <duration>``, at least one.

    Durations are written like ``90s``, ``1h30m`` or ``1.5h``.
    """
    duration = expression[len('@every '):].strip()
    if not _DURATION.fullmatch(duration):
        raise ConfigurationError('Invalid duration in cron expression %r'
                                 % expression)
    seconds = sum(float(number) * _DURATION_UNITS[unit]
                  for number, unit in _DURATION_PART.findall(duration))
    return max(1, int(seconds))


@implementer(IScheduler)
class Scheduler(object):
    """Dispatch once at start, then every time `expression` matches.

    `scheduler_factory` builds the APScheduler scheduler that drives the
    recurring fires; with a blocking scheduler `start` only returns once the
    schedule has been shut down.
    """

    scheduler_factory = BackgroundScheduler  # allow replacement for testing.
    job_id = 'dispatch'

    def __init__(self, dispatcher, expression=DEFAULT_SCHEDULE,
                 timezone=DEFAULT_TIMEZONE, scheduler_factory=None):
        self.dispatcher = dispatcher
        self.expression = expression
        self.timezone = timezone
        self.tzinfo = get_timezone(timezone)
        self.trigger = make_trigger(expression, timezone)
        if scheduler_factory is not None:
            self.scheduler_factory = scheduler_factory
        self._scheduler = None

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    def next_fire_time(self, now=None):
        if now is None:
            now = datetime.now(self.tzinfo)
        return self.trigger.get_next_fire_time(None, now)

    def start(self):
        if self._scheduler is not None:
            raise RuntimeError('Scheduler already started')

        log.info("Dispatching first message immediately")
        self.dispatcher.run_once()

        scheduler = self.scheduler_factory(timezone=self.tzinfo)
        scheduler.add_job(self.dispatcher.run_once, self.trigger,
                          id=self.job_id, name='timemachine dispatch')
        self._scheduler = scheduler
        log.info("Scheduler started, running on schedule: %s (%s)",
                 self.expression, self.timezone)
        scheduler.start()

    def stop(self, wait=True):
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=wait)
            log.info("Scheduler stopped")
