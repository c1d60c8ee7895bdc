# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/core/__init__.py
from .context import DeployContext
from .exceptions import OvaImporterError
from .logger import Log

__all__ = ["DeployContext", "OvaImporterError", "Log"]
