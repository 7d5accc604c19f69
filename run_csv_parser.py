#!/usr/bin/env python3
"""
Run CSV Parser - Import Binance P2P order exports into the ledger store

Usage:
    python run_csv_parser.py export1.csv [export2.csv ...] [--config p2p_config.json]

Re-importing a file replaces every record previously imported from it.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from py_csv_parser.csv_parser import main

if __name__ == "__main__":
    sys.exit(main())
