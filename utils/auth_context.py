from flask import current_app, g, request

from security.tokens import TokenError


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_principal():
    g.principal = None
    g.auth_error = None

    token = _bearer_token()
    if not token:
        return

    verifier = current_app.extensions["token_verifier"]
    try:
        g.principal = verifier.decode(token)
    except TokenError as exc:
        g.auth_error = str(exc)


def current_principal():
    return getattr(g, "principal", None)
