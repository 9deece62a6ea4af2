# SPDX-License-Identifier: Apache-2.0

"""
Middleware package - Flask error handling and HAL error formatting.
"""
