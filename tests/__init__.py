# Copyright Red Hat
#
# tests/__init__.py - Mirror drift checker test package
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    json = False
    config = "/nonexistent/driftcheck.conf"
    roots = []
    root = None
    paths = []
    hash_algorithm = None
    workers = None
    follow_symlinks = None
    exclude_patterns = None
    skip_delete_check = None
    commit_interval = None
    sync = None
    use_magic_file_type = None
    quiet = True
