#!/usr/bin/env python3
"""
Command line entry point.

Usage: python manage.py <command> [options]
Run with --help for the command list.
"""

import argparse
import json
import logging
import mimetypes
import shutil
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables before Config reads them
load_dotenv()

from config import Config  # noqa: E402
from esign import request_service, storage  # noqa: E402
from esign.docusign_accounts import connect_account  # noqa: E402
from esign.documents import DocumentError, DocuSignClient, TemplateLoader, YamlGenerator  # noqa: E402
from esign.documents.docx_renderer import extract_docx_text  # noqa: E402
from esign.documents.loader import files_dir  # noqa: E402
from esign.documents.pdf_utils import extract_pdf_text  # noqa: E402
from models import get_session  # noqa: E402

logger = logging.getLogger(__name__)


def _json_arg(value, name):
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"--{name} is not valid JSON: {e}")


def cmd_init_db(args):
    from init_db import init_db
    init_db()
    return 0


def cmd_validate_templates(args):
    TemplateLoader.load_all()
    templates = TemplateLoader.all(include_archived=True)
    print(f"{len(templates)} template definition(s) valid")

    if not args.check_files:
        return 0

    failed = 0
    for template in templates:
        problems = TemplateLoader.check_source_file(template)
        if problems:
            failed += 1
            print(f"\n{template.slug}:")
            for problem in problems:
                print(f"  - {problem}")
    if failed:
        print(f"\n{failed} template(s) have source file problems")
        return 1
    print("All template source files match their definitions")
    return 0


def cmd_list_templates(args):
    TemplateLoader.load_all()
    for template in TemplateLoader.all(include_archived=args.all):
        archived = ' (archived)' if template.archived else ''
        print(f"{template.slug:40} {template.name}{archived}")
        print(f"{'':40} category={template.category} file={template.file_path} "
              f"placeholders={len(template.placeholders)} anchors={len(template.anchors)} "
              f"roles={', '.join(template.get_role_names())}")
    return 0


def cmd_scaffold(args):
    source = Path(args.file)
    data = source.read_bytes()
    if source.suffix.lower() == '.docx':
        text = extract_docx_text(data)
    elif source.suffix.lower() == '.pdf':
        text = "\n".join(extract_pdf_text(data))
    else:
        print("Only .docx and .pdf files can be scaffolded")
        return 1

    slug = args.slug or YamlGenerator.slugify(args.name)
    yaml_content = YamlGenerator.scaffold_from_text(
        name=args.name,
        slug=slug,
        file_path=f"{slug}{source.suffix.lower()}",
        text=text,
        category=args.category
    )

    if not args.save:
        print(yaml_content)
        return 0

    template = TemplateLoader.save(yaml_content)
    target = files_dir() / template.file_path
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    print(f"Saved template '{template.slug}' with source {target}")
    return 0


def cmd_auth_url(args):
    print(DocuSignClient.get_auth_url(state=args.state))
    return 0


def cmd_connect(args):
    tokens = DocuSignClient.exchange_code_for_token(args.code)
    session = get_session()
    try:
        account = connect_account(session, args.user, tokens)
        print(f"Connected DocuSign account {account.provider_account_id} for {args.user}")
    finally:
        session.close()
    return 0


def cmd_upload(args):
    path = Path(args.file)
    content_type, _ = mimetypes.guess_type(path.name)
    stored = storage.save_upload(path.name, path.read_bytes(), content_type)
    print(json.dumps({'fileId': stored.file_id, 'fileName': stored.file_name}))
    return 0


def cmd_submit(args):
    session = get_session()
    try:
        signing_request = request_service.create_request(
            session,
            args.user,
            document_template_slug=args.template,
            uploaded_file_id=args.upload,
            filled_values=_json_arg(args.values, 'values'),
            roles=_json_arg(args.roles, 'roles'),
            tab_map=_json_arg(args.tab_map, 'tab-map'),
            docusign_friendly=args.docusign_friendly
        )
        print(f"Created request {signing_request.id}")
        if args.no_process:
            return 0

        signing_request = request_service.process_request(session, signing_request.id)
        print(json.dumps(signing_request.to_dict(), indent=2))
    finally:
        session.close()
    return 0


def cmd_status(args):
    session = get_session()
    try:
        signing_request = request_service.get_request(session, args.request_id)
        if signing_request is None:
            print(f"Request not found: {args.request_id}")
            return 1
        print(json.dumps(signing_request.to_dict(), indent=2))
    finally:
        session.close()
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Document assembly and DocuSign template builder")
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init-db', help="Create tables, header PDF and sample template sources")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser('validate-templates', help="Validate every template definition")
    p.add_argument('--check-files', action='store_true', help="Also check each source document")
    p.set_defaults(func=cmd_validate_templates)

    p = sub.add_parser('list-templates', help="List template definitions")
    p.add_argument('--all', action='store_true', help="Include archived templates")
    p.set_defaults(func=cmd_list_templates)

    p = sub.add_parser('scaffold', help="Draft a template definition from a document's markers")
    p.add_argument('file')
    p.add_argument('--name', required=True)
    p.add_argument('--slug')
    p.add_argument('--category', default='General')
    p.add_argument('--save', action='store_true', help="Save the definition and copy the source file")
    p.set_defaults(func=cmd_scaffold)

    p = sub.add_parser('auth-url', help="Print the DocuSign consent URL")
    p.add_argument('--state')
    p.set_defaults(func=cmd_auth_url)

    p = sub.add_parser('connect', help="Exchange an authorization code and store the account")
    p.add_argument('code')
    p.add_argument('--user', required=True)
    p.set_defaults(func=cmd_connect)

    p = sub.add_parser('upload', help="Store a PDF or DOCX for use in a request")
    p.add_argument('file')
    p.set_defaults(func=cmd_upload)

    p = sub.add_parser('submit', help="Create a signing request and process it")
    p.add_argument('--user', required=True)
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument('--template', help="Template slug")
    source.add_argument('--upload', help="Uploaded file id")
    p.add_argument('--values', help="Placeholder values as a JSON object")
    p.add_argument('--roles', help="Signer roles as a JSON list")
    p.add_argument('--tab-map', help="Tab map as a JSON list")
    p.add_argument('--docusign-friendly', action='store_true')
    p.add_argument('--no-process', action='store_true', help="Only record the request as pending")
    p.set_defaults(func=cmd_submit)

    p = sub.add_parser('status', help="Show a signing request")
    p.add_argument('request_id')
    p.set_defaults(func=cmd_status)

    return parser


def main(argv=None):
    logging.basicConfig(level=Config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    args = build_parser().parse_args(argv)

    try:
        return args.func(args)
    except (DocumentError, argparse.ArgumentTypeError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
