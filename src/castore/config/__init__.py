# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/config/__init__.py

"""Configuration loading for castore."""

from .manager import StoreConfig, HyperdriveConfig, DEFAULT_POOL_SIZE

__all__ = ["StoreConfig", "HyperdriveConfig", "DEFAULT_POOL_SIZE"]
