#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core functionality for raster upscaling.

This module contains the core components for raster and table loading,
configuration management, and logging setup.
"""
