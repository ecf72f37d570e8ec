"""
Video URL and language validation.
"""

from urllib.parse import urlparse

from factchecker.core.constants import (
    SUPPORTED_PLATFORMS, SUPPORTED_LANGUAGES, UNKNOWN_PLATFORM,
)
from factchecker.core.error_codes import JobError, ErrorCode


def _hostname(url: str) -> str | None:
    url = (url or '').strip()
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return None
    host = parsed.hostname.lower()
    if host.startswith('www.'):
        host = host[4:]
    return host


def _domain_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith('.' + domain)


def extract_platform(url: str) -> str:
    """Return the platform display name for a URL, or 'Unknown'."""
    host = _hostname(url)
    if not host:
        return UNKNOWN_PLATFORM
    for platform in SUPPORTED_PLATFORMS:
        if any(_domain_matches(host, d) for d in platform['domains']):
            return platform['name']
    return UNKNOWN_PLATFORM


def supported_platform_names() -> list[str]:
    return [p['name'] for p in SUPPORTED_PLATFORMS]


def get_language(code: str) -> dict | None:
    for lang in SUPPORTED_LANGUAGES:
        if lang['code'] == code:
            return lang
    return None


def language_name(code: str) -> str:
    """Display name used in model prompts; English for unknown codes."""
    lang = get_language(code)
    return lang['name'] if lang else 'English'


def validate_submission(url: str, language: str) -> str:
    """
    Validate a submission and return the platform name.
    Raises JobError(INVALID_INPUT) if invalid.
    """
    if url is not None and not isinstance(url, str):
        raise JobError(ErrorCode.INVALID_INPUT, "Video URL must be a string")
    if language is not None and not isinstance(language, str):
        raise JobError(ErrorCode.INVALID_INPUT, "Language must be a string")
    if not url or not url.strip():
        raise JobError(ErrorCode.INVALID_INPUT, "Video URL is required")
    if not language:
        raise JobError(ErrorCode.INVALID_INPUT, "Language is required")

    platform = extract_platform(url)
    if platform == UNKNOWN_PLATFORM:
        raise JobError(ErrorCode.INVALID_INPUT,
                       "Unsupported platform. Supported: " + ", ".join(supported_platform_names()))

    if get_language(language) is None:
        raise JobError(ErrorCode.INVALID_INPUT, "Unsupported language")

    return platform
