__all__ = [
    "create_access_token",
    "create_token_for_user",
    "decode_access_token",
    "get_current_user",
    "require_role",
    "oauth2_scheme",
    "utcnow",
    "ensure_utc",
]


def __getattr__(name):
    if name in {
        "create_access_token",
        "create_token_for_user",
        "decode_access_token",
        "get_current_user",
        "require_role",
        "oauth2_scheme",
    }:
        from . import security as _security
        return getattr(_security, name)
    if name in {"utcnow", "ensure_utc"}:
        from . import clock as _clock
        return getattr(_clock, name)
    raise AttributeError(f"module 'app.utils' has no attribute '{name}'")
