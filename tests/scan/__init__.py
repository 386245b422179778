# Copyright Red Hat
#
# tests/scan/__init__.py - Scan package tests
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
