"""Self-contained HTML error documents.

Only used before any generated byte has reached the client; once a
streamed body has started there is no way to replace it.
"""

from __future__ import annotations

from html import escape

_DEFAULT_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    408: "Request Timeout",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}

_TEMPLATE = (
    '<!DOCTYPE html><html><head><meta charset="utf-8">'
    "<title>{status} - {title}</title></head>"
    '<body style="font-family: sans-serif; background-color: {bg}; color: {fg};">'
    '<div style="text-align: center; padding: 50px;">'
    "<h1>{status} - {title}</h1>"
    "<p>{summary}</p>"
    "{details}"
    '<a href="{home}">{link_text}</a>'
    "</div></body></html>"
)


def render(
    message: str,
    status_code: int = 500,
    *,
    title: str | None = None,
    summary: str = "An error occurred while calling the AI service.",
    home_href: str = "/",
    link_text: str = "Back to home",
) -> str:
    """Return a complete HTML error page embedding *message*."""
    if title is None:
        title = _DEFAULT_TITLES.get(status_code, "Error")
    details = f"<p>{escape(message)}</p>" if message else ""
    return _TEMPLATE.format(
        status=status_code,
        title=escape(title),
        summary=escape(summary),
        details=details,
        home=escape(home_href, quote=True),
        link_text=escape(link_text),
        bg="#fdd",
        fg="#a00",
    )
