##############################################################################
#
# Copyright (c) 2006 Zope Corporation and Contributors.
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
import os
from setuptools import setup, find_packages

testing_extras = ['pytest', 'coverage']

requires = ['setuptools',
            'zope.interface>=5.0',
            'transaction>=3.0',
            'APScheduler>=3.9,<4',
            'python-dotenv',
            'tzdata']

here = os.path.abspath(os.path.dirname(__file__))
def _read_file(filename):
    try:
        with open(os.path.join(here, filename)) as f:
            return f.read()
    except IOError:
        return ''

README = _read_file('README.rst')

setup(name='timemachine',
      version = '1.0.0',
      license='ZPL 2.1',
      description='Durable reminder queue with scheduled mail delivery',
      long_description=README,
      classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: Implementation :: CPython",
        ],
      packages=find_packages(include=['timemachine', 'timemachine.*']),
      python_requires='>=3.9',
      install_requires=requires,
      include_package_data = True,
      zip_safe = False,
      entry_points = """
          [console_scripts]
          timemachine = timemachine.console:run_console
          """,
      extras_require = {
        'testing': requires + testing_extras,
      },
)
