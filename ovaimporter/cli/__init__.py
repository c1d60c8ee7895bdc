# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/cli/__init__.py
from .args import build_parser, parse_args_with_config
from .response import ImporterResponse, write_response

__all__ = ["ImporterResponse", "build_parser", "parse_args_with_config", "write_response"]
