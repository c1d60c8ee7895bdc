# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/__init__.py
"""
ovaimporter - deploy OVA appliances into vSphere as templates

Usage as a library:

    from ovaimporter import DeployContext, connect, deploy_ova_templates

    ctx = DeployContext(timeout_s=300)
    with connect("vcenter.example.com", "admin", "secret", ctx=ctx) as session:
        session.resolve_inventory(network="prod-net")
        results = deploy_ova_templates(session, "/srv/images/web.ova")
"""

__version__ = "0.1.0"

from .core.context import DeployContext
from .core.exceptions import OvaImporterError
from .vsphere.batch import deploy_ova_templates
from .vsphere.deploy import DeployInfo, DeployOptions, deploy_ova_template
from .vsphere.session import Session, connect

__all__ = [
    "__version__",
    "DeployContext",
    "DeployInfo",
    "DeployOptions",
    "OvaImporterError",
    "Session",
    "connect",
    "deploy_ova_template",
    "deploy_ova_templates",
]
