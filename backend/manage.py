#!/usr/bin/env python
import os
import sys
from pathlib import Path


def main():
    # the dispatch core packages (dispatch/, drivers/, pricing/, routing/) sit one level up
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_backend.settings")

    from django.core.management import execute_from_command_line

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
