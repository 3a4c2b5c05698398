"""Setuptools build hooks for arrayref."""

from __future__ import annotations

from setuptools import setup

# Metadata lives in pyproject.toml; the project ships pure Python modules plus
# the expression grammar as package data.
setup()
