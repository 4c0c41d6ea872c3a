#!/usr/bin/env python3
"""Convenience runner for the SafeWalk journey monitor.

Usage:
    python run.py walk --home 40.4168 -3.7038 --fix 40.4268 -3.7038
"""
import sys

from safewalk.main import main

if __name__ == "__main__":
    sys.exit(main())
