"""
Setuptools build script for baishify.

This file allows installation of the ``baishify`` package via
``pip install .``.  It declares the required dependencies and
registers a console script entry point named ``b``.  When
installed, users can invoke the CLI with ``b "<prompt>"`` from their
shell, run ``b setup`` once to pick a provider, and ``b init`` to
install the shell function wrapper.
"""

from setuptools import setup, find_packages

setup(
    name="baishify",
    version="0.2.0",
    description="Turn a natural language prompt into one reviewed shell command",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "click>=8.0",
        "PyYAML>=5.4",
        "httpx>=0.24",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "b=baishify.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
