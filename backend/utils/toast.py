"""
HTMX toast helpers.

A toast travels in the HX-Trigger response header as
{"showToast": {"message": ..., "type": ...}} and, for plain redirects where
that header is lost, in a short-lived flash_toast cookie.
"""
import json
from urllib.parse import quote

from flask import make_response

from config.logging import get_logger

log = get_logger()

TOAST_COOKIE = "flash_toast"
TOAST_COOKIE_MAX_AGE = 10


def set_toast(response, toast_type: str, message: str):
    """Attach a toast to the response, merging with any HX-Trigger already set"""
    payload = {"message": message, "type": toast_type}
    existing = response.headers.get("HX-Trigger")

    trigger = {}
    if existing:
        try:
            trigger = json.loads(existing)
            if not isinstance(trigger, dict):
                trigger = {}
        except ValueError as e:
            log.warning(f"toast: existing HX-Trigger is not valid JSON, overwriting: {e}")
            trigger = {}
    trigger["showToast"] = payload
    response.headers["HX-Trigger"] = json.dumps(trigger)

    # JS reads the cookie, so it cannot be HttpOnly
    response.set_cookie(
        TOAST_COOKIE,
        quote(json.dumps(payload)),
        max_age=TOAST_COOKIE_MAX_AGE,
        path="/",
        httponly=False,
        samesite="Lax",
    )
    return response


def error_toast(status_code: int, message: str):
    """Error response whose body HTMX will not swap in; only the toast is shown"""
    response = make_response(message, status_code)
    set_toast(response, "error", message)
    response.headers["HX-Reswap"] = "none"
    return response
