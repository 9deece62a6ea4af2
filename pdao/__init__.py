# SPDX-License-Identifier: Apache-2.0

"""
PDAO field station.

Member scanning, benefit entitlement snapshots and event attendance for the
Persons with Disability Affairs Office, backed by the remote PDAO API.
"""

__version__ = "1.0.0"
