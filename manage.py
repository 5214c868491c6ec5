#!/usr/bin/env python
"""Storefront management entry point (migrate, seed_catalog, runserver, ...)."""
import os
import sys


def main():
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Install the project with `pip install -e .`"
        ) from exc

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
