# Copyright Red Hat
#
# driftcheck/__init__.py - Mirror drift checker package initialisation
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Driftcheck top-level package.
"""
from ._driftcheck import *  # noqa: F401, F403
from ._driftcheck import __all__  # noqa: F401

__version__ = "0.3.0"
