"""
Envelope Builder

Translates the internal role / anchor / tab-mapping model into the
DocuSign EnvelopeTemplate structure: one signer per role, with each
mapped anchor turned into the matching tab list.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .types import Anchor, SignerRole, TabMapping, TabType, parse_roles, parse_tab_map
from .placeholders import anchor_string
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

# Offsets applied to every anchored tab
ANCHOR_UNITS = 'pixels'
ANCHOR_Y_OFFSET = '-10'
ANCHOR_X_OFFSET = '0'

# Internal tab type -> DocuSign tab list name
TAB_LISTS = {
    TabType.SIGNATURE.value: 'signHereTabs',
    TabType.DATE.value: 'dateSignedTabs',
    TabType.TEXT.value: 'textTabs',
    TabType.CHECKBOX.value: 'checkboxTabs',
    TabType.RADIO.value: 'radioGroupTabs',
}


def _anchored(anchor_name: str) -> Dict[str, str]:
    return {
        'anchorString': anchor_string(anchor_name),
        'anchorUnits': ANCHOR_UNITS,
        'anchorYOffset': ANCHOR_Y_OFFSET,
        'anchorXOffset': ANCHOR_X_OFFSET,
    }


def build_tab(tab: TabMapping) -> Dict[str, Any]:
    """Build the DocuSign tab object for one mapping."""
    if tab.tab_type == TabType.RADIO.value:
        # Radio buttons live inside a group; the anchor positions the single radio
        radio = _anchored(tab.anchor_name)
        radio['value'] = tab.anchor_name
        return {'groupName': tab.anchor_name, 'radios': [radio]}

    result = _anchored(tab.anchor_name)
    if tab.tab_type in (TabType.TEXT.value, TabType.CHECKBOX.value):
        result['tabLabel'] = tab.anchor_name
    return result


@dataclass
class Signer:
    """
    A DocuSign template signer ready for the API.

    ``tabs`` maps a DocuSign tab list name (signHereTabs, ...) to its tabs.
    """
    role_name: str
    routing_order: int
    recipient_id: int
    email: Optional[str] = None
    tabs: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def add_tab(self, tab: TabMapping) -> bool:
        list_name = TAB_LISTS.get(tab.tab_type)
        if list_name is None:
            return False
        self.tabs.setdefault(list_name, []).append(build_tab(tab))
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to DocuSign API format, leaving out empty tab lists."""
        result = {
            'roleName': self.role_name,
            'routingOrder': str(self.routing_order),
            'recipientId': str(self.recipient_id),
        }
        if self.email:
            result['email'] = self.email
        tabs = {name: items for name, items in self.tabs.items() if items}
        if tabs:
            result['tabs'] = tabs
        return result


class EnvelopeBuilder:
    """
    Builds DocuSign envelope template payloads.

    Takes:
        - Roles (role name + signing order)
        - Tab map (anchor -> role, tab type)
        - The final PDF

    Returns:
        - The EnvelopeTemplate body for POST /v2.1/accounts/{id}/templates
    """

    @classmethod
    def build_signers(cls, roles: Iterable[Any], tab_map: Iterable[Any]) -> List[Signer]:
        """
        Build one signer per role, in the order the roles are given.

        routingOrder is the role's signing order, so roles sharing an order
        sign in parallel. recipientId is the role's 1-based position, which
        keeps it unique in that case.
        """
        roles = parse_roles(list(roles))
        tab_map = parse_tab_map(list(tab_map))

        signers = []
        for position, role in enumerate(roles, start=1):
            signer = Signer(
                role_name=role.role_name,
                routing_order=role.signing_order,
                recipient_id=position,
                email=role.email
            )
            for tab in tab_map:
                if tab.role_name != role.role_name:
                    continue
                if not signer.add_tab(tab):
                    logger.warning(
                        f"Skipping anchor '{tab.anchor_name}' for role '{role.role_name}': "
                        f"unknown tab type '{tab.tab_type}'"
                    )
            signers.append(signer)

        logger.debug(f"Built {len(signers)} signer(s)")
        return signers

    @classmethod
    def build_template_request(
        cls,
        name: str,
        pdf_bytes: bytes,
        roles: Iterable[Any],
        tab_map: Iterable[Any]
    ) -> Dict[str, Any]:
        """
        Build the EnvelopeTemplate request body.

        Args:
            name: Template name; also used for the document file name
            pdf_bytes: The merged PDF
            roles: SignerRoles or their dict form
            tab_map: TabMappings or their dict form
        """
        signers = cls.build_signers(roles, tab_map)
        return {
            'name': name,
            'description': f"Template: {name}",
            'emailSubject': f"Please sign: {name}",
            'documents': [{
                'documentBase64': base64.b64encode(pdf_bytes).decode('ascii'),
                'name': f"{name}.pdf",
                'fileExtension': 'pdf',
                'documentId': '1',
            }],
            'recipients': {
                'signers': [s.to_dict() for s in signers],
            },
        }

    @classmethod
    def validate_tab_map(
        cls,
        roles: Iterable[Any],
        tab_map: Iterable[Any],
        anchors: Optional[Iterable[Anchor]] = None
    ) -> None:
        """
        Check that a tab map only references known roles, tab types and anchors.

        Raises:
            ValidationError listing every problem found
        """
        roles = parse_roles(list(roles))
        tab_map = parse_tab_map(list(tab_map))
        role_names = {r.role_name for r in roles}
        anchor_names = {a.name for a in anchors} if anchors is not None else None

        problems = []
        for role in roles:
            if not role.role_name:
                problems.append("Role with empty name")
            if role.signing_order < 1:
                problems.append(f"Role '{role.role_name}' has signing order {role.signing_order} (must be >= 1)")

        for tab in tab_map:
            if tab.role_name not in role_names:
                problems.append(f"Anchor '{tab.anchor_name}' mapped to unknown role '{tab.role_name}'")
            if tab.tab_type not in TAB_LISTS:
                problems.append(f"Anchor '{tab.anchor_name}' has unknown tab type '{tab.tab_type}'")
            if anchor_names is not None and tab.anchor_name not in anchor_names:
                problems.append(f"Tab map references undeclared anchor '{tab.anchor_name}'")

        if problems:
            raise ValidationError("Invalid tab map: " + "; ".join(problems), field='tab_map')
