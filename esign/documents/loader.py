"""
Template Loader

Loads, validates, and caches document template definitions from YAML
files. Validates all definitions on startup and fails fast if any are
invalid.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Set

import jsonschema
import yaml

from config import Config
from .types import DocumentTemplate
from .exceptions import ConfigurationError, ValidationError
from .placeholders import NAME_PATTERN, extract_anchors, extract_placeholders, validate_anchors
from .docx_renderer import extract_docx_text
from .pdf_utils import extract_pdf_text

logger = logging.getLogger(__name__)


def definitions_dir() -> Path:
    return Path(Config.TEMPLATE_DEFINITIONS_DIR)


def files_dir() -> Path:
    return Path(Config.TEMPLATE_FILES_DIR)


class TemplateLoader:
    """
    Singleton loader for document template definitions.

    Loads all YAML files from the definitions directory, validates them
    against the JSON schema, and caches them for fast lookup while
    requests are processed.

    Usage:
        # On startup
        TemplateLoader.load_all()

        # While handling a request
        template = TemplateLoader.get('letter-of-recommendation')
    """

    _definitions: Dict[str, DocumentTemplate] = {}
    _schemas: Dict[str, dict] = {}
    _validated: bool = False

    @classmethod
    def load_all(cls) -> None:
        """
        Load and validate all template definitions.

        If any definition fails validation, raises ConfigurationError
        with all errors listed.
        """
        cls._definitions.clear()
        cls._validated = False
        errors = []

        cls._load_schemas()

        directory = definitions_dir()
        if not directory.exists():
            logger.warning(f"Template definitions directory not found: {directory}")
            return

        yaml_files = sorted(directory.glob('*.yml')) + sorted(directory.glob('*.yaml'))
        if not yaml_files:
            logger.warning(f"No template definitions found in {directory}")
            return

        for yaml_file in yaml_files:
            try:
                template = cls._load_and_validate(yaml_file)

                if template.slug in cls._definitions:
                    errors.append(
                        f"{yaml_file.name}: Duplicate slug '{template.slug}' "
                        f"(already defined in another file)"
                    )
                    continue

                cls._definitions[template.slug] = template
                logger.debug(f"Loaded template definition: {template.slug}")

            except (ValidationError, yaml.YAMLError) as e:
                errors.append(f"{yaml_file.name}: {e}")
            except (KeyError, TypeError, ValueError) as e:
                errors.append(f"{yaml_file.name}: Malformed definition - {e}")

        if errors:
            error_msg = "Template configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

        cls._validated = True
        logger.info(f"Loaded {len(cls._definitions)} template definition(s)")

    @classmethod
    def _load_schemas(cls) -> None:
        """Load JSON schemas (schema/v<version>.json)."""
        cls._schemas.clear()

        schema_dir = definitions_dir() / 'schema'
        if not schema_dir.exists():
            logger.warning(f"Schema directory not found: {schema_dir}")
            return

        for schema_file in schema_dir.glob('v*.json'):
            cls._schemas[schema_file.stem] = json.loads(schema_file.read_text())
            logger.debug(f"Loaded schema: {schema_file.stem}")

    @classmethod
    def _ensure_schemas(cls) -> None:
        if not cls._schemas:
            cls._load_schemas()

    @classmethod
    def _schema_check(cls, raw: dict) -> None:
        version = str(raw.get('schema_version', '1.0'))
        schema = cls._schemas.get(f"v{version}")
        if schema is None:
            if cls._schemas:
                raise ValidationError(f"Unknown schema version: {version}")
            return
        try:
            jsonschema.validate(raw, schema)
        except jsonschema.ValidationError as e:
            location = '.'.join(str(p) for p in e.absolute_path)
            raise ValidationError(
                f"Schema validation failed{f' at {location}' if location else ''}: {e.message}",
                template_slug=raw.get('slug')
            )

    @classmethod
    def _load_and_validate(cls, path: Path) -> DocumentTemplate:
        """Load a YAML file and validate it."""
        raw = yaml.safe_load(path.read_text())
        if not raw:
            raise ValidationError("Empty template definition")
        if not isinstance(raw, dict):
            raise ValidationError("Template definition must be a mapping")
        return cls._validate_raw(raw)

    @classmethod
    def _validate_raw(cls, raw: dict) -> DocumentTemplate:
        # 1. Schema validation
        cls._schema_check(raw)

        # 2. Referential integrity
        cls._validate_references(raw)

        # 3. Business rules
        cls._validate_business_rules(raw)

        # 4. Convert to typed dataclass
        return DocumentTemplate.from_dict(raw)

    @classmethod
    def _validate_references(cls, raw: dict) -> None:
        """Validate that tab mappings reference declared anchors and roles."""
        slug = raw.get('slug')
        anchors = {a['name']: a.get('tab_type', 'signature') for a in raw.get('anchors', [])}
        role_names: Set[str] = {r['role_name'] for r in raw.get('default_roles', [])}

        for tab in raw.get('default_tab_map', []):
            anchor_name = tab.get('anchor_name')
            if anchor_name not in anchors:
                raise ValidationError(
                    f"Tab map references unknown anchor '{anchor_name}'. "
                    f"Declared anchors: {sorted(anchors)}",
                    template_slug=slug
                )
            if tab.get('role_name') not in role_names:
                raise ValidationError(
                    f"Anchor '{anchor_name}' mapped to unknown role '{tab.get('role_name')}'. "
                    f"Available roles: {sorted(role_names)}",
                    template_slug=slug
                )
            if tab.get('tab_type', 'signature') != anchors[anchor_name]:
                raise ValidationError(
                    f"Anchor '{anchor_name}' is declared as '{anchors[anchor_name]}' "
                    f"but mapped as '{tab.get('tab_type')}'",
                    template_slug=slug
                )

    @classmethod
    def _validate_business_rules(cls, raw: dict) -> None:
        """Validate naming, uniqueness and ordering rules."""
        slug = raw.get('slug')

        for section in ('placeholders', 'anchors'):
            names = [item['name'] for item in raw.get(section, [])]
            duplicates = {n for n in names if names.count(n) > 1}
            if duplicates:
                raise ValidationError(f"Duplicate {section} names: {sorted(duplicates)}", template_slug=slug)
            for name in names:
                if not NAME_PATTERN.match(name):
                    raise ValidationError(
                        f"Invalid {section[:-1]} name '{name}'. "
                        f"Use upper-case letters and underscores only (e.g., FULL_NAME)",
                        template_slug=slug
                    )

        role_names = [r['role_name'] for r in raw.get('default_roles', [])]
        duplicates = {n for n in role_names if role_names.count(n) > 1}
        if duplicates:
            raise ValidationError(f"Duplicate role names: {sorted(duplicates)}", template_slug=slug)

        for role in raw.get('default_roles', []):
            if int(role.get('signing_order', 0)) < 1:
                raise ValidationError(
                    f"Role '{role['role_name']}' must have a signing_order of 1 or more",
                    template_slug=slug
                )

        mapped = [t.get('anchor_name') for t in raw.get('default_tab_map', [])]
        duplicates = {n for n in mapped if mapped.count(n) > 1}
        if duplicates:
            raise ValidationError(f"Anchors mapped more than once: {sorted(duplicates)}", template_slug=slug)

    @classmethod
    def get(cls, slug: str) -> Optional[DocumentTemplate]:
        """
        Get a template by slug.

        Returns None if not found.
        """
        return cls._definitions.get(slug)

    @classmethod
    def get_or_raise(cls, slug: str) -> DocumentTemplate:
        template = cls.get(slug)
        if not template:
            raise ValidationError(f"Unknown document template: {slug}", template_slug=slug)
        return template

    @classmethod
    def all(cls, include_archived: bool = False) -> List[DocumentTemplate]:
        """Get loaded templates sorted by name, hiding archived ones by default."""
        templates = [t for t in cls._definitions.values() if include_archived or not t.archived]
        return sorted(templates, key=lambda t: t.name)

    @classmethod
    def all_slugs(cls) -> List[str]:
        return list(cls._definitions.keys())

    @classmethod
    def by_category(cls, category: str) -> List[DocumentTemplate]:
        return [t for t in cls.all() if t.category == category]

    @classmethod
    def is_loaded(cls) -> bool:
        """Check if templates have been loaded and validated."""
        return cls._validated

    @classmethod
    def clear(cls) -> None:
        """Clear all cached definitions. Mainly for testing."""
        cls._definitions.clear()
        cls._schemas.clear()
        cls._validated = False

    @classmethod
    def reload(cls) -> None:
        """Reload all definitions. Used after saving new YAML."""
        cls.clear()
        try:
            cls.load_all()
        except ConfigurationError as e:
            logger.error(f"Failed to reload templates: {e}")
            raise

    @classmethod
    def ensure_loaded(cls) -> None:
        if not cls._validated:
            cls.load_all()

    @classmethod
    def validate_yaml_content(cls, yaml_content: str) -> List[str]:
        """
        Validate YAML content without saving.

        Returns:
            List of validation error messages (empty if valid)
        """
        cls._ensure_schemas()
        try:
            raw = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            return [f"YAML syntax error: {e}"]

        if not raw:
            return ["Empty template definition"]
        if not isinstance(raw, dict):
            return ["Template definition must be a mapping"]

        errors = []
        try:
            cls._schema_check(raw)
        except ValidationError as e:
            # Later checks assume schema-valid input
            return [str(e)]

        for check in (cls._validate_references, cls._validate_business_rules):
            try:
                check(raw)
            except ValidationError as e:
                errors.append(str(e))
        return errors

    @classmethod
    def save(cls, yaml_content: str, overwrite: bool = False) -> DocumentTemplate:
        """
        Validate and store a new template definition as <slug>.yml.

        Raises:
            ValidationError if the content is invalid or the slug exists
        """
        errors = cls.validate_yaml_content(yaml_content)
        if errors:
            raise ValidationError("Invalid template definition: " + "; ".join(errors))

        raw = yaml.safe_load(yaml_content)
        template = DocumentTemplate.from_dict(raw)

        target = definitions_dir() / f"{template.slug}.yml"
        existing = cls.get(template.slug)
        if not overwrite and (target.exists() or existing):
            raise ValidationError(f"Template '{template.slug}' already exists", template_slug=template.slug)

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(yaml_content)
        logger.info(f"Saved template definition {target}")

        cls.reload()
        return cls.get_or_raise(template.slug)

    @classmethod
    def source_path(cls, template: DocumentTemplate) -> Path:
        return files_dir() / template.file_path

    @classmethod
    def check_source_file(cls, template: DocumentTemplate) -> List[str]:
        """
        Compare a template's source file against its definition.

        Returns:
            Problems found: missing file, required anchors absent,
            placeholders used in the file but not declared
        """
        path = cls.source_path(template)
        if not path.is_file():
            return [f"Source file not found: {path}"]

        data = path.read_bytes()
        if template.is_docx:
            text = extract_docx_text(data)
        elif template.is_pdf:
            text = "\n".join(extract_pdf_text(data))
        else:
            return [f"Unsupported source file type: {path.suffix}"]

        problems = []
        anchor_result = validate_anchors(template.anchors, text)
        for name in anchor_result.missing:
            problems.append(f"Required anchor {{{{DS:{name}}}}} not found in {path.name}")

        declared_anchors = {a.name for a in template.anchors}
        for name in extract_anchors(text):
            if name not in declared_anchors:
                problems.append(f"Anchor {{{{DS:{name}}}}} in {path.name} is not declared")

        declared = {p.name for p in template.placeholders}
        for name in extract_placeholders(text):
            if name not in declared:
                problems.append(f"Placeholder {{{{VAR:{name}}}}} in {path.name} is not declared")

        return problems
