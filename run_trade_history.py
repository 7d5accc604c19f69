#!/usr/bin/env python3
"""
Run Trade History - FIFO profit report for one asset/fiat pair

Usage:
    python run_trade_history.py --asset USDT --fiat TRY [--from 2024-01-01] [--to 2024-01-31]
                                [--market-price 34.1] [--period month] [--journal journal.csv]
"""

import sys
import os

# Ensure the root directory is in PYTHONPATH so we can import the packages
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from py_trade_history.trade_history import main

if __name__ == "__main__":
    sys.exit(main())
