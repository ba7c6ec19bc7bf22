"""Dependency injection container assembly utilities."""

from kai_relay.dependency_injection.container import build_container, get_container, register_token_source

__all__ = ["build_container", "get_container", "register_token_source"]
