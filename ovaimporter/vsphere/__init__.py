# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/vsphere/__init__.py
from .batch import deploy_ova_templates
from .deploy import DeployInfo, DeployOptions, deploy_ova_template
from .session import Session, connect

__all__ = ["DeployInfo", "DeployOptions", "Session", "connect", "deploy_ova_template", "deploy_ova_templates"]
