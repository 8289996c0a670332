# seo_scout/__init__.py
"""
SeoScout package initializer.
Defines package version and exposes CLI.
"""
__version__ = "0.1.0"

from .cli import cli  # экспорт для pytest и console_scripts
