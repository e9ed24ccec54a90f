"""Request body parsing for the JSON and multipart API calls."""

import email.parser
import email.policy
import json


class BadRequest(ValueError):
    pass


class BodyTooLarge(BadRequest):
    pass


class UploadedFile:
    def __init__(self, filename, content_type, data):
        self.filename = filename
        self.content_type = content_type
        self.data = data


def parse_json(body):
    """Decode a JSON object body; anything else raises BadRequest."""
    try:
        data = json.loads(body or b"")
    except ValueError:
        raise BadRequest("invalid JSON body")
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def parse_multipart(content_type, body):
    """Split a multipart/form-data body into plain fields and uploaded files.

    Returns ``(fields, files)``; both map the form field name to the first
    value sent under that name.
    """
    if not content_type or not content_type.lower().startswith("multipart/form-data"):
        raise BadRequest("expected multipart/form-data")
    head = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n"
    message = email.parser.BytesParser(policy=email.policy.HTTP).parsebytes(head + body)
    if not message.is_multipart():
        raise BadRequest("malformed multipart body")

    fields = {}
    files = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            continue
        payload = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        if filename is not None:
            if name not in files:
                part_type = part.get("Content-Type") and part.get_content_type()
                files[name] = UploadedFile(filename, part_type or "application/octet-stream", payload)
        elif name not in fields:
            charset = part.get_content_charset() or "utf-8"
            fields[name] = payload.decode(charset, errors="replace")
    return fields, files
