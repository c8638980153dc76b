#!/usr/bin/env python
# -*- coding: utf-8 -*-

import os
import re

from setuptools import setup


def get_version(package):
    """
    Return package version as listed in `__version__` in `init.py`.
    """
    init_py = open(os.path.join(package, "__init__.py")).read()
    return re.search("__version__ = ['\"]([^'\"]+)['\"]", init_py).group(1)


def get_long_description():
    """
    Return the README.
    """
    return open("README.md", "r", encoding="utf8").read()


def get_packages(package):
    """
    Return root package and all sub-packages.
    """
    return [
        dirpath
        for dirpath, dirnames, filenames in os.walk(package)
        if os.path.exists(os.path.join(dirpath, "__init__.py"))
    ]


setup(
    name="duplex-chat",
    version=get_version("duplex_chat"),
    license="BSD",
    description="Two-party line chat over a TCP relay with a live terminal prompt",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_data={"duplex_chat": ["py.typed"]},
    packages=get_packages("duplex_chat"),
    python_requires=">=3.9",
    install_requires=[
        "anyio>=4.0",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "duplex-chat-relay=duplex_chat.cli:relay",
            "duplex-chat-peer=duplex_chat.cli:peer",
            "duplex-chat-user1=duplex_chat.cli:user1",
            "duplex-chat-user2=duplex_chat.cli:user2",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Topic :: Communications :: Chat",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
    ],
)
