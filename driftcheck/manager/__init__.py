# Copyright Red Hat
#
# driftcheck/manager/__init__.py - Mirror drift checker manager
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top level interface to the mirror drift checker.
"""

from ._manager import CheckReport, DriftcheckConfig, Manager, RootConfig

__all__ = [
    "CheckReport",
    "DriftcheckConfig",
    "Manager",
    "RootConfig",
]
