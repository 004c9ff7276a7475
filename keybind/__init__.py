# keybind: domain-bound license keys

from keybind.client.client import LicenseClient, LicenseClientError

__all__ = [
    "LicenseClient",
    "LicenseClientError",
]
