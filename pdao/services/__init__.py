# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - backend client, local cache, sync and scan sessions.
"""
