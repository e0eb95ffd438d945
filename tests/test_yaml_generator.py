"""
YAML definition generator tests.

Generated output is checked by loading it back through the loader's
validation, so it always matches the JSON schema.

Run with: python -m pytest tests/test_yaml_generator.py -v
"""

import sys
from pathlib import Path

import yaml

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from esign.documents import TemplateLoader, YamlGenerator


class TestGenerate:

    CONFIG = {
        'name': 'Offer Letter',
        'category': 'Hiring',
        'placeholders': [{'name': 'FULL_NAME', 'required': True}],
        'anchors': [
            {'name': 'SIGNATURE_CANDIDATE', 'tabType': 'signature', 'required': True},
            {'name': 'DATE_SIGNED', 'tab_type': 'date'},
        ],
        'default_roles': [{'roleName': 'Candidate', 'signingOrder': 1}],
    }

    def test_generates_valid_definition(self, workspace):
        content = YamlGenerator.generate(self.CONFIG)
        assert content.startswith('# Offer Letter')
        assert TemplateLoader.validate_yaml_content(content) == []

    def test_defaults(self, workspace):
        data = yaml.safe_load(YamlGenerator.generate(self.CONFIG))
        assert data['slug'] == 'offer-letter'
        assert data['file_path'] == 'offer-letter.docx'
        assert data['schema_version'] == '1.0'
        assert data['placeholders'][0] == {'name': 'FULL_NAME', 'label': 'Full Name', 'required': True, 'type': 'text'}

    def test_default_tab_map_uses_first_role(self, workspace):
        data = yaml.safe_load(YamlGenerator.generate(self.CONFIG))
        assert data['default_tab_map'] == [
            {'anchor_name': 'SIGNATURE_CANDIDATE', 'role_name': 'Candidate', 'tab_type': 'signature'},
            {'anchor_name': 'DATE_SIGNED', 'role_name': 'Candidate', 'tab_type': 'date'},
        ]

    def test_signing_order_defaults_to_position(self, workspace):
        config = dict(self.CONFIG, default_roles=[{'role_name': 'Candidate'}, {'role_name': 'Manager'}])
        data = yaml.safe_load(YamlGenerator.generate(config))
        assert [r['signing_order'] for r in data['default_roles']] == [1, 2]

    def test_explicit_zero_signing_order_kept(self, workspace):
        config = dict(self.CONFIG, default_roles=[{'role_name': 'Candidate', 'signing_order': 0}])
        content = YamlGenerator.generate(config)
        assert yaml.safe_load(content)['default_roles'][0]['signing_order'] == 0
        errors = TemplateLoader.validate_yaml_content(content)
        assert errors and 'signing_order' in errors[0]

    def test_key_order_preserved(self, workspace):
        data = yaml.safe_load(YamlGenerator.generate(self.CONFIG))
        assert list(data)[:4] == ['schema_version', 'slug', 'name', 'category']


class TestScaffold:
    """Drafting a definition from the markers in a document."""

    TEXT = (
        "Dear {{VAR:FULL_NAME}}, starting {{VAR:START_DATE}} at {{VAR:SALARY_AMOUNT}}.\n"
        "{{DS:SIGNATURE_CANDIDATE}} {{DS:DATE_SIGNED}} {{DS:CHECK_AGREE}} {{DS:TITLE}}"
    )

    def test_scaffold_is_valid(self, workspace):
        content = YamlGenerator.scaffold_from_text('Offer Letter', 'offer-letter', 'offer-letter.docx', self.TEXT)
        assert TemplateLoader.validate_yaml_content(content) == []

    def test_types_inferred_from_names(self, workspace):
        data = yaml.safe_load(
            YamlGenerator.scaffold_from_text('Offer Letter', 'offer-letter', 'offer-letter.docx', self.TEXT)
        )
        assert {p['name']: p['type'] for p in data['placeholders']} == {
            'FULL_NAME': 'text',
            'START_DATE': 'date',
            'SALARY_AMOUNT': 'number',
        }
        assert {a['name']: a['tab_type'] for a in data['anchors']} == {
            'SIGNATURE_CANDIDATE': 'signature',
            'DATE_SIGNED': 'date',
            'CHECK_AGREE': 'checkbox',
            'TITLE': 'text',
        }
        assert data['default_roles'] == [{'role_name': 'Signer', 'signing_order': 1}]
        assert all(t['role_name'] == 'Signer' for t in data['default_tab_map'])


class TestHelpers:

    def test_labelize(self):
        assert YamlGenerator.labelize('FULL_NAME') == 'Full Name'

    def test_slugify(self):
        assert YamlGenerator.slugify('Letter of Recommendation!') == 'letter-of-recommendation'
        assert YamlGenerator.slugify('!!!') == 'document'
