#!/usr/bin/env python3
"""Run the host2mqtt bridge."""

from __future__ import annotations

import sys

from host2mqtt.bridge import main

if __name__ == "__main__":
    sys.exit(main())
