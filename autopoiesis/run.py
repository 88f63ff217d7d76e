#!/usr/bin/env python
"""
Run the two-entity kernel headless from a source checkout.

Drives the circle and square through fixed logic ticks with a wandering
host, then prints each entity's final activity and mood, the resonance
and the emergence metrics.
Works without installing the package:
    python run.py --scenario fast_time --seconds 300 --plot run.png
    python run.py --tau 0.1 --strength-normalization weight --seed 7
"""
import sys
import os

# The package lives one level up from this file
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

from autopoiesis.main import main

if __name__ == "__main__":
    main()
