# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Builds field station responses with state-dependent affordance links.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from ..models.enums import ScanState
from ..models.responses import HalLink

SCAN_SESSION_PATH = "/api/scan-sessions/current"


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.replace('-', ' ').title()
        )


class AffordanceLinkBuilder:
    """Builder for affordance links that depend on resource state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_scan_session_affordances(self, state: str, scanning_enabled: bool) -> Dict[str, HalLink]:
        """Offer only the operator actions valid in the current scan state."""
        links = {'self': self.link_builder.build_self_link(SCAN_SESSION_PATH)}

        if scanning_enabled:
            links['decode'] = self.link_builder.build_action_link(
                SCAN_SESSION_PATH, "decode", title="Submit decoded code"
            )
        if state == ScanState.ELIGIBLE:
            links['confirm'] = self.link_builder.build_action_link(
                SCAN_SESSION_PATH, "confirm", title="Confirm claim"
            )
        if state in (ScanState.RESOLVE_ERROR, ScanState.CLAIM_ERROR):
            links['retry'] = self.link_builder.build_action_link(
                SCAN_SESSION_PATH, "retry", title="Retry"
            )
        if state not in (ScanState.IDLE, ScanState.RESOLVING, ScanState.CLAIMING):
            links['scan-again'] = self.link_builder.build_action_link(
                SCAN_SESSION_PATH, "scan-again", title="Scan Again"
            )

        links['close'] = self.link_builder.build_link(
            SCAN_SESSION_PATH, method="DELETE", title="Leave scanner"
        )
        return links

    def build_benefit_affordances(self, benefit_id: str) -> Dict[str, HalLink]:
        """Links for a benefit snapshot."""
        base_path = f"/api/benefits/{benefit_id}"
        return {
            'self': self.link_builder.build_self_link(base_path),
            'add-participants': self.link_builder.build_link(
                f"{base_path}/participants", method="POST",
                content_type="application/json", title="Add participants"
            ),
            'remove-participants': self.link_builder.build_link(
                f"{base_path}/participants", method="DELETE",
                content_type="application/json", title="Remove participants"
            ),
            'claim-status': self.link_builder.build_link(
                f"{base_path}/claims/{{user_id}}", title="Claim status", templated=True
            ),
            'scan': self.link_builder.build_link(
                "/api/scan-sessions", method="POST",
                content_type="application/json", title="Scan claims"
            ),
        }


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def build_resource_response(
        self,
        data: Dict[str, Any],
        resource_path: str,
        links: Optional[Dict[str, HalLink]] = None
    ) -> Dict[str, Any]:
        """Build a HAL resource response."""
        response = dict(data)
        links = links or {'self': self.link_builder.build_self_link(resource_path)}
        response['_links'] = {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with embedded items."""
        response = {'total': len(items)}
        if extra:
            response.update(extra)
        response['_links'] = {
            'self': self.link_builder.build_self_link(collection_path).model_dump(exclude_none=True),
            'refresh': self.link_builder.build_link(
                f"{collection_path}?refresh=true", title="Refresh now"
            ).model_dump(exclude_none=True)
        }
        response['_embedded'] = {'items': items}
        return response

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"https://pdao.local/problems/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }
        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )

        error_response['_links'] = {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}
        return error_response


PROBLEM_TITLES = {
    "validation-error": "Validation Failed",
    "authentication-required": "Authentication Required",
    "not-eligible": "Not Eligible",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "network-failure": "Backend Unreachable",
    "internal-server-error": "Internal Server Error",
}


class HalFormatter:
    """Formats station resources, list views and problem documents."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_scan_session(self, view: Dict[str, Any]) -> Dict[str, Any]:
        """Format the scanner screen state with the actions it allows."""
        links = self.builder.affordance_builder.build_scan_session_affordances(
            view['state'], view['scanning_enabled']
        )
        return self.builder.build_resource_response(view, SCAN_SESSION_PATH, links)

    def format_benefit(self, benefit: Dict[str, Any]) -> Dict[str, Any]:
        benefit_id = benefit.get('id') or ''
        links = self.builder.affordance_builder.build_benefit_affordances(benefit_id)
        return self.builder.build_resource_response(benefit, f"/api/benefits/{benefit_id}", links)

    def format_collection(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self.builder.build_collection_response(items, collection_path, extra)

    def format_problem(
        self,
        error_type: str,
        detail: str,
        instance: str,
        status: int,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Problem document for one of the station's error types."""
        title = PROBLEM_TITLES.get(error_type, "Application Error")
        return self.builder.build_error_response(
            error_type, title, status, detail, instance, validation_errors
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Any]] = None
    ) -> Dict[str, Any]:
        """Validation problem; plain string errors become ``{"message": ...}``."""
        errors = [
            e if isinstance(e, dict) else {'message': str(e)}
            for e in (validation_errors or [])
        ]
        return self.format_problem("validation-error", detail, instance, 400, errors)

    def format_server_error(self, detail: str, instance: str, status: int = 500) -> Dict[str, Any]:
        return self.format_problem("internal-server-error", detail, instance, status)


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Factory function to create HAL formatter."""
    return HalFormatter(base_url)
