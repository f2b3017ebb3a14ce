#!/usr/bin/env python3
"""
Root launcher for the USDC speedtest.
Imports the scenario module and calls its main() function.
"""
import sys
import os

# Ensure the current directory is in the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from scenarios.exp_speedtest import main

if __name__ == "__main__":
    main()
