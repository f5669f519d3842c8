# attachments.py

import base64
import binascii
import logging
from typing import NamedTuple

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024

BLOCKED_EXTENSIONS = {'exe', 'dll', 'so', 'dylib', 'app'}
BLOCKED_MIME_TYPES = {
    'application/x-msdownload',
    'application/x-msdos-program',
    'application/vnd.microsoft.portable-executable',
    'application/x-dosexec',
    'application/x-mach-binary',
    'application/x-apple-diskimage',
    'application/x-executable',
    'application/x-sharedlib',
    'application/x-elf',
}


class FileAttachment(NamedTuple):
    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.name.rsplit('.', 1)[-1].lower() if '.' in self.name else ''


def rejection_reason(attachment: FileAttachment):
    """Returns a human-readable reason if the attachment must be dropped, else None."""
    if attachment.extension in BLOCKED_EXTENSIONS or attachment.mime_type.lower() in BLOCKED_MIME_TYPES:
        return f"'{attachment.name}' was skipped: executable files are not supported."
    if attachment.size > MAX_ATTACHMENT_BYTES:
        return f"'{attachment.name}' was skipped: files must be 10 MB or smaller."
    return None


def filter_attachments(attachments):
    """
    Splits attachments into the accepted list and warnings for rejected ones.
    A rejected file never fails the whole request.
    """
    accepted, warnings = [], []
    for attachment in attachments or []:
        reason = rejection_reason(attachment)
        if reason:
            logging.warning(f"Dropping attachment: {reason}")
            warnings.append(reason)
        else:
            accepted.append(attachment)
    return accepted, warnings


def from_payload(items: list):
    """
    Decodes JSON attachment payloads ({name, mimeType, data(base64)}).
    Undecodable items are reported as warnings, like any other rejected file.
    """
    decoded, warnings = [], []
    for item in items or []:
        name = (item or {}).get('name') or 'attachment'
        try:
            data = base64.b64decode(item.get('data', ''), validate=True)
        except (binascii.Error, ValueError, TypeError):
            warnings.append(f"'{name}' was skipped: the file could not be read.")
            continue
        decoded.append(FileAttachment(name, item.get('mimeType') or 'application/octet-stream', data))
    return decoded, warnings


def to_payload(attachment: FileAttachment) -> dict:
    return {
        'name': attachment.name,
        'mimeType': attachment.mime_type,
        'data': base64.b64encode(attachment.data).decode('ascii'),
    }
