"""Security module for summary encryption."""

from src.security.crypto_service import CryptoService, load_or_create_key

__all__ = ['CryptoService', 'load_or_create_key']
