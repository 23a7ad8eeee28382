"""NetBox installer: idempotent provisioning of NetBox on Ubuntu hosts."""

__version__ = "0.1.0"
