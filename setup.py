#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from setuptools import setup

setup(
    name             = 'zipserve',
    version          = '0.1.0',

    description      = 'Serves a folder over HTTP showing ZIP archives, also nested ones, as folders',
    license          = 'MIT',
    classifiers      = [ 'License :: OSI Approved :: MIT License',
                         'Development Status :: 4 - Beta',
                         'Natural Language :: English',
                         'Operating System :: MacOS',
                         'Operating System :: Unix',
                         'Programming Language :: Python :: 3',
                         'Programming Language :: Python :: 3.9',
                         'Programming Language :: Python :: 3.10',
                         'Programming Language :: Python :: 3.11',
                         'Programming Language :: Python :: 3.12',
                         'Topic :: Internet :: WWW/HTTP :: HTTP Servers',
                         'Topic :: System :: Archiving' ],

    python_requires  = '>=3.9',
    packages         = [ 'zipservecore',
                         'zipservecore.mountsource',
                         'zipservecore.mountsource.formats',
                         'zipservecore.mountsource.compositing',
                         'zipserve' ],
    install_requires = [
        'rich',
    ],
    # argcomplete only adds shell completion, so keep it optional like the other nice-to-have dependencies.
    extras_require   = {
        'full' : [ 'argcomplete' ],
        'test' : [ 'pytest' ],
    },
    entry_points = { 'console_scripts': [ 'zipserve=zipserve.cli:cli' ] }
)
