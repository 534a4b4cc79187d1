"""dokploy-dns: keep registrar CNAME records in step with Traefik-labelled containers."""

__version__ = "1.0.0"
