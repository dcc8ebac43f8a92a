#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster Upscaling Package.

Evaluate a pre-trained regression model against held-out observations and
upscale it over a masked study area into a georeferenced prediction map.
"""

__version__ = "0.1.0"
__author__ = "Elena Project Team"
__email__ = "user@example.com"
