from .http_token_verifier import HttpTokenVerifier  # noqa: F401
