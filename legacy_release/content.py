"""Rendering of protected message content for email delivery."""

import html
import re
from typing import Tuple

from .constants import DEFAULT_SENDER_NAME
from .schemas import ProtectedMessage, Recipient

_TAG_PATTERN = re.compile(r'<[^>]*>')
_SCRIPT_PATTERN = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.IGNORECASE)
_STYLE_PATTERN = re.compile(r'<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>', re.IGNORECASE)
_EMBED_PATTERN = re.compile(r'<(iframe|object|embed|applet)[^>]*>.*?</\1>', re.IGNORECASE | re.DOTALL)
_QUOTED_HANDLER_PATTERN = re.compile(r'\s+on\w+\s*=\s*["\'][^"\']*["\']', re.IGNORECASE)
_BARE_HANDLER_PATTERN = re.compile(r'\s+on\w+\s*=\s*[^\s>]*', re.IGNORECASE)
_ACTIVE_URL_PATTERN = re.compile(r'javascript:|data:text/html', re.IGNORECASE)


def _clean_tag(match: re.Match) -> str:
    tag = _QUOTED_HANDLER_PATTERN.sub('', match.group(0))
    tag = _BARE_HANDLER_PATTERN.sub('', tag)
    return _ACTIVE_URL_PATTERN.sub('', tag)


def sanitize_html(content: str) -> str:
    """Strip active content from message HTML.

    Handler attributes and script URLs are only removed inside tags; text
    between tags is delivered as written.
    """
    sanitized = _SCRIPT_PATTERN.sub('', content)
    sanitized = _STYLE_PATTERN.sub('', sanitized)
    sanitized = _EMBED_PATTERN.sub('', sanitized)
    return _TAG_PATTERN.sub(_clean_tag, sanitized)


def to_html(content: str) -> str:
    """Convert plain text to HTML line breaks; leave HTML untouched."""
    if _TAG_PATTERN.search(content):
        return content
    return content.replace('\n', '<br>')


def substitute_placeholders(text: str, recipient_name: str, sender_name: str) -> str:
    return (
        text.replace('[Name]', recipient_name)
        .replace('[Recipient Name]', recipient_name)
        .replace('[Your Name]', sender_name)
    )


class MessageRenderer:
    """Produce the subject and HTML body sent to one recipient."""

    def __init__(self, sender_name: str = DEFAULT_SENDER_NAME):
        self.sender_name = sender_name

    def render(self, message: ProtectedMessage, recipient: Recipient) -> Tuple[str, str]:
        name = recipient.display_name
        subject = substitute_placeholders(message.title, name, self.sender_name)
        # Names land in HTML; the subject header stays plain text
        body = substitute_placeholders(message.body, html.escape(name), html.escape(self.sender_name))
        return subject, sanitize_html(to_html(body))
