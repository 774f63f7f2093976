from typing import Tuple
from urllib.parse import urlparse


def validate_url(url: str) -> Tuple[bool, str, str]:
    """
    Check that url is an absolute http(s) URL.

    Unlike a lenient normalizer this never guesses a scheme: the caller has to
    send one.

    Returns:
        (is_valid, stripped_url, error_message)
    """
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    url = url.strip()

    try:
        parsed = urlparse(url)
    except ValueError as e:
        return False, url, f"URL parsing error: {str(e)}"

    if parsed.scheme not in ['http', 'https']:
        return False, url, "URL must start with http:// or https://"

    if not parsed.netloc or not parsed.hostname:
        return False, url, "Invalid URL format: missing domain"

    return True, url, ""


def extract_domain(url: str) -> str:
    """https://www.example.com.br/page -> example.com.br"""
    with_scheme = url if url.startswith("http") else f"https://{url}"
    hostname = urlparse(with_scheme).hostname or url
    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    return hostname
