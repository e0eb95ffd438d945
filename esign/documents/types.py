"""
Document System Type Definitions

Dataclasses representing document templates loaded from YAML and the
role / tab-mapping model a signing request carries. Definitions are
immutable after loading and validated on startup.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from enum import Enum


class PlaceholderType(Enum):
    """Value types a placeholder can collect."""
    TEXT = "text"
    DATE = "date"
    NUMBER = "number"


class TabType(Enum):
    """DocuSign tab kinds an anchor can become."""
    SIGNATURE = "signature"
    DATE = "date"
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"


def _pick(data: Dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    """Read a key that may arrive snake_case (YAML) or camelCase (form JSON)."""
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass(frozen=True)
class Placeholder:
    """
    A {{VAR:NAME}} field filled from user-submitted values.

    Attributes:
        name: Upper-case identifier used inside the marker
        label: Human readable label shown on the request form
        required: Request is rejected when the value is blank
        type: Value type, drives validation and the default transform
        transform: Optional transform name overriding the type default
    """
    name: str
    label: str
    required: bool = False
    type: PlaceholderType = PlaceholderType.TEXT
    transform: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Placeholder':
        return cls(
            name=data['name'],
            label=data.get('label') or data['name'],
            required=bool(data.get('required', False)),
            type=PlaceholderType(data.get('type', 'text')),
            transform=data.get('transform')
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'label': self.label,
            'required': self.required,
            'type': self.type.value,
        }
        if self.transform:
            result['transform'] = self.transform
        return result


@dataclass(frozen=True)
class Anchor:
    """
    A {{DS:NAME}} marker DocuSign locates to place a tab.

    Attributes:
        name: Upper-case identifier used inside the marker
        label: Human readable label
        tab_type: Kind of tab placed at the marker
        required: Document is rejected when the marker is absent
    """
    name: str
    label: str
    tab_type: TabType = TabType.SIGNATURE
    required: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Anchor':
        return cls(
            name=data['name'],
            label=data.get('label') or data['name'],
            tab_type=TabType(_pick(data, 'tab_type', 'tabType', 'signature')),
            required=bool(data.get('required', False))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'label': self.label,
            'tab_type': self.tab_type.value,
            'required': self.required,
        }


@dataclass(frozen=True)
class SignerRole:
    """A DocuSign template role and its position in the routing order."""
    role_name: str
    signing_order: int
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SignerRole':
        return cls(
            role_name=_pick(data, 'role_name', 'roleName'),
            signing_order=int(_pick(data, 'signing_order', 'signingOrder', 1)),
            email=data.get('email') or None
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'role_name': self.role_name, 'signing_order': self.signing_order}
        if self.email:
            result['email'] = self.email
        return result


@dataclass(frozen=True)
class TabMapping:
    """Assigns an anchor to the role that fills it, as a given tab type."""
    anchor_name: str
    role_name: str
    tab_type: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TabMapping':
        return cls(
            anchor_name=_pick(data, 'anchor_name', 'anchorName'),
            role_name=_pick(data, 'role_name', 'roleName'),
            tab_type=_pick(data, 'tab_type', 'tabType', 'signature')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'anchor_name': self.anchor_name,
            'role_name': self.role_name,
            'tab_type': self.tab_type,
        }


def parse_roles(raw: Optional[List[Any]]) -> List[SignerRole]:
    """Coerce a list of dicts (or SignerRole objects) into SignerRoles."""
    return [r if isinstance(r, SignerRole) else SignerRole.from_dict(r) for r in (raw or [])]


def parse_tab_map(raw: Optional[List[Any]]) -> List[TabMapping]:
    """Coerce a list of dicts (or TabMapping objects) into TabMappings."""
    return [t if isinstance(t, TabMapping) else TabMapping.from_dict(t) for t in (raw or [])]


@dataclass(frozen=True)
class DocumentTemplate:
    """
    Complete definition of a reusable document template.

    One YAML file = one DocumentTemplate. The source file (DOCX or PDF)
    lives under the template files directory and carries the
    {{VAR:...}} placeholders and {{DS:...}} anchors declared here.
    """
    schema_version: str
    slug: str
    name: str
    category: str
    file_path: str
    placeholders: List[Placeholder]
    anchors: List[Anchor]
    default_roles: List[SignerRole]
    default_tab_map: List[TabMapping]
    archived: bool = False

    @property
    def is_docx(self) -> bool:
        return self.file_path.lower().endswith('.docx')

    @property
    def is_pdf(self) -> bool:
        return self.file_path.lower().endswith('.pdf')

    def get_placeholder(self, name: str) -> Optional[Placeholder]:
        return next((p for p in self.placeholders if p.name == name), None)

    def get_anchor(self, name: str) -> Optional[Anchor]:
        return next((a for a in self.anchors if a.name == name), None)

    def required_placeholders(self) -> List[Placeholder]:
        return [p for p in self.placeholders if p.required]

    def required_anchors(self) -> List[Anchor]:
        return [a for a in self.anchors if a.required]

    def get_tabs_for_role(self, role_name: str) -> List[TabMapping]:
        """Get the default tab mappings owned by a role."""
        return [t for t in self.default_tab_map if t.role_name == role_name]

    def get_role_names(self) -> List[str]:
        return [r.role_name for r in self.default_roles]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentTemplate':
        """
        Create a DocumentTemplate from a parsed YAML dict.

        Lists are stored as tuples so the definition stays immutable.
        """
        return cls(
            schema_version=str(data.get('schema_version', '1.0')),
            slug=data['slug'],
            name=data['name'],
            category=data.get('category', 'General'),
            file_path=data['file_path'],
            placeholders=tuple(Placeholder.from_dict(p) for p in data.get('placeholders', [])),
            anchors=tuple(Anchor.from_dict(a) for a in data.get('anchors', [])),
            default_roles=tuple(parse_roles(data.get('default_roles'))),
            default_tab_map=tuple(parse_tab_map(data.get('default_tab_map'))),
            archived=bool(data.get('archived', False))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'slug': self.slug,
            'name': self.name,
            'category': self.category,
            'file_path': self.file_path,
            'archived': self.archived,
            'placeholders': [p.to_dict() for p in self.placeholders],
            'anchors': [a.to_dict() for a in self.anchors],
            'default_roles': [r.to_dict() for r in self.default_roles],
            'default_tab_map': [t.to_dict() for t in self.default_tab_map],
        }


@dataclass
class ValidationResult:
    """Outcome of validating filled values or document content."""
    valid: bool
    missing: List[str] = field(default_factory=list)
    invalid: Dict[str, str] = field(default_factory=dict)


@dataclass
class DocuSignTokens:
    """OAuth tokens plus the account they grant access to."""
    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    account_id: str
    base_url: str
