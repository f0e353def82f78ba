"""Core account helpers."""

from .users import create_login_token, extract_login_token, get_user_for_context

__all__ = ["create_login_token", "extract_login_token", "get_user_for_context"]
