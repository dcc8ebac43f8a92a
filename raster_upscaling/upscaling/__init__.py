#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Upscaling stages: raster/table conversion, model evaluation and spatial prediction.
"""
