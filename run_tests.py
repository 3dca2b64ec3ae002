#!/usr/bin/env python
"""
Test runner script for the full backend suite
Usage: python run_tests.py [app_label ...]
"""
import os
import sys

import django
from django.conf import settings
from django.test.utils import get_runner

APPS = [
    'backend.core',
    'backend.projects',
    'backend.tasks',
    'backend.costs',
    'backend.materials',
    'backend.material_requests',
    'backend.reports',
]

if __name__ == "__main__":
    # settings.TESTING keys off argv[1] == 'test'
    sys.argv = [sys.argv[0], 'test'] + sys.argv[1:]
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.config.settings')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    failures = test_runner.run_tests(sys.argv[2:] or APPS)
    sys.exit(bool(failures))
