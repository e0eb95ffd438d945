"""
Document assembly and DocuSign template builder.

esign.documents holds the template definitions and the assembly
stages (placeholders, header merge, envelope payload, DocuSign API);
request_service runs a signing request through them.
"""
