# SPDX-License-Identifier: Apache-2.0

"""
Field station API blueprints.
"""
