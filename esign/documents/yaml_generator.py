"""
YAML Generator Service

Generates schema-compliant template definitions, either from an
explicit configuration (the create-template form) or as a draft
scaffolded from the markers found in a document's text.
"""

import re
from typing import Any, Dict, List

import yaml

from .placeholders import extract_anchors, extract_placeholders

DEFAULT_ROLE_NAME = 'Signer'


class YamlGenerator:
    """
    Generates YAML template definitions.

    Output format matches document_templates/schema/v1.0.json.
    """

    # Name patterns used to guess types when scaffolding
    DATE_NAME = re.compile(r'(^DATE(_|$)|_DATE$)')
    NUMBER_NAME = re.compile(r'_(AMOUNT|COUNT|NUMBER|TOTAL|QUANTITY)$')
    SIGNATURE_NAME = re.compile(r'(^SIGNATURE|_SIGNATURE$)')
    CHECKBOX_NAME = re.compile(r'(^CHECK|_CHECKBOX$)')

    @classmethod
    def generate(cls, config: Dict[str, Any]) -> str:
        """
        Generate YAML content from a template configuration.

        Args:
            config: dict containing:
                - slug, name, category, file_path
                - placeholders: [{name, label, required, type}]
                - anchors: [{name, label, tab_type, required}]
                - default_roles: [{role_name, signing_order}]
                - default_tab_map: [{anchor_name, role_name, tab_type}]
                  (defaults to every anchor on the first role)

        Returns:
            YAML string ready to save to file
        """
        doc = cls._build_document_structure(config)
        header = f"# {doc['name']}\n# Generated template definition\n\n"
        return header + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False, allow_unicode=True)

    @classmethod
    def _build_document_structure(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        slug = config.get('slug') or cls.slugify(config.get('name', 'document'))
        anchors = cls._build_anchors(config.get('anchors', []))
        roles = cls._build_roles(config.get('default_roles', []))

        tab_map = config.get('default_tab_map')
        if not tab_map and roles:
            first_role = roles[0]['role_name']
            tab_map = [
                {'anchor_name': a['name'], 'role_name': first_role, 'tab_type': a['tab_type']}
                for a in anchors
            ]

        return {
            'schema_version': '1.0',
            'slug': slug,
            'name': config.get('name', ''),
            'category': config.get('category') or 'General',
            'file_path': config.get('file_path') or f"{slug}.docx",
            'archived': bool(config.get('archived', False)),
            'placeholders': cls._build_placeholders(config.get('placeholders', [])),
            'anchors': anchors,
            'default_roles': roles,
            'default_tab_map': [
                {
                    'anchor_name': t.get('anchor_name') or t.get('anchorName'),
                    'role_name': t.get('role_name') or t.get('roleName'),
                    'tab_type': t.get('tab_type') or t.get('tabType') or 'signature',
                }
                for t in (tab_map or [])
            ],
        }

    @classmethod
    def _build_placeholders(cls, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        placeholders = []
        for item in items:
            entry = {
                'name': item['name'],
                'label': item.get('label') or cls.labelize(item['name']),
                'required': bool(item.get('required', False)),
                'type': item.get('type', 'text'),
            }
            if item.get('transform'):
                entry['transform'] = item['transform']
            placeholders.append(entry)
        return placeholders

    @classmethod
    def _build_anchors(cls, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                'name': item['name'],
                'label': item.get('label') or cls.labelize(item['name']),
                'tab_type': item.get('tab_type') or item.get('tabType') or 'signature',
                'required': bool(item.get('required', False)),
            }
            for item in items
        ]

    @classmethod
    def _build_roles(cls, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        roles = []
        for index, item in enumerate(items, start=1):
            order = item.get('signing_order')
            if order is None:
                order = item.get('signingOrder')
            roles.append({
                'role_name': item.get('role_name') or item.get('roleName'),
                'signing_order': index if order is None else int(order),
            })
        return roles

    @classmethod
    def scaffold_from_text(
        cls,
        name: str,
        slug: str,
        file_path: str,
        text: str,
        category: str = 'General'
    ) -> str:
        """
        Draft a definition from the markers found in a document.

        Every placeholder and anchor becomes required; types are guessed
        from names and a single Signer role owns every anchor.
        """
        placeholders = [
            {'name': n, 'label': cls.labelize(n), 'required': True, 'type': cls.infer_placeholder_type(n)}
            for n in extract_placeholders(text)
        ]
        anchors = [
            {'name': n, 'label': cls.labelize(n), 'tab_type': cls.infer_tab_type(n), 'required': True}
            for n in extract_anchors(text)
        ]
        return cls.generate({
            'name': name,
            'slug': slug,
            'category': category,
            'file_path': file_path,
            'placeholders': placeholders,
            'anchors': anchors,
            'default_roles': [{'role_name': DEFAULT_ROLE_NAME, 'signing_order': 1}],
        })

    @classmethod
    def infer_placeholder_type(cls, name: str) -> str:
        if cls.DATE_NAME.search(name):
            return 'date'
        if cls.NUMBER_NAME.search(name):
            return 'number'
        return 'text'

    @classmethod
    def infer_tab_type(cls, name: str) -> str:
        if cls.SIGNATURE_NAME.search(name):
            return 'signature'
        if cls.DATE_NAME.search(name):
            return 'date'
        if cls.CHECKBOX_NAME.search(name):
            return 'checkbox'
        return 'text'

    @staticmethod
    def labelize(name: str) -> str:
        """FULL_NAME -> Full Name"""
        return ' '.join(part.capitalize() for part in name.split('_') if part)

    @staticmethod
    def slugify(name: str) -> str:
        """Letter of Recommendation -> letter-of-recommendation"""
        return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-') or 'document'
