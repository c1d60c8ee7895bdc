# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/config/__init__.py
from .config_loader import Config, ImporterConfig

__all__ = ["Config", "ImporterConfig"]
