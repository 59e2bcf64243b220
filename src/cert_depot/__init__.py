"""
cert_depot — X.509 certificate and CRL distribution service.

Accepts PEM CRL uploads, verifies them against stored CA certificates,
keeps the newest full and delta CRL per issuer (archiving superseded
versions), and serves decoded views of everything it stores.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
