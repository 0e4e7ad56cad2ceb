"""Single-host WordPress + n8n stack provisioner."""

__version__ = "1.0.0"
