"""reqtag urls - final dispatch URL construction."""

from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

# Characters encodeURIComponent leaves alone
_COMPONENT_SAFE = "-_.!~*'()"

# Schemes whose empty path is written as "/"
_PATH_SCHEMES = ("http", "https")


def _usable_pairs(params: dict[str, str] | None) -> list[tuple[str, str]]:
    """Pairs with a non-empty key and a non-empty value.

    Applied on both the parsed and the fallback path so the result does
    not depend on whether base_url happens to parse.
    """
    if not params:
        return []
    return [(k, v) for k, v in params.items() if k and v]


def _split_absolute(url: str):
    """Split url if it is an absolute http(s)-style URL, else return None."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    if "{{" in parts.netloc or "}}" in parts.netloc:
        return None
    if any(c.isspace() for c in url):
        return None
    try:
        # Raises ValueError for malformed ports and brackets
        parts.port  # noqa: B018
    except ValueError:
        return None
    return parts


def _set_params(query: str, pairs: list[tuple[str, str]]) -> str:
    """Set each pair on query, replacing the first same-named parameter."""
    existing = parse_qsl(query, keep_blank_values=True)
    updates = dict(pairs)
    result: list[tuple[str, str]] = []
    written: set[str] = set()
    for key, value in existing:
        if key in updates:
            if key in written:
                continue  # later duplicates are dropped
            result.append((key, updates[key]))
            written.add(key)
        else:
            result.append((key, value))
    for key, value in pairs:
        if key not in written:
            result.append((key, value))
            written.add(key)
    return urlencode(result)


def _encode_component(s: str) -> str:
    return quote(s, safe=_COMPONENT_SAFE)


def build_final_url(base_url: str, params: dict[str, str] | None) -> str:
    """Append params to base_url as query parameters.

    - No usable params: base_url is returned untouched
    - Absolute URL: params are set on the query string (overwriting
      same-named parameters), fragment preserved
    - Anything else (relative, unresolved {{VAR}} host): pairs are
      percent-encoded and appended with ? or &
    """
    if not base_url:
        return base_url

    pairs = _usable_pairs(params)
    if not pairs:
        return base_url

    parts = _split_absolute(base_url)
    if parts is not None:
        query = _set_params(parts.query, pairs)
        path = parts.path
        if not path and parts.scheme.lower() in _PATH_SCHEMES:
            path = "/"
        return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))

    query_string = "&".join(f"{_encode_component(k)}={_encode_component(v)}" for k, v in pairs)
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{query_string}"
