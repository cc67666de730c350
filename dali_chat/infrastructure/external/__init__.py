from .http_client import TokenProvider, build_headers, create_async_client

__all__ = ['TokenProvider', 'build_headers', 'create_async_client']
