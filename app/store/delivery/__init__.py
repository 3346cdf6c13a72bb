from .issuer import DeliveryLinkError, DeliveryLocatorIssuer, DownloadLink, StreamLocator

__all__ = [
    "DeliveryLinkError",
    "DeliveryLocatorIssuer",
    "DownloadLink",
    "StreamLocator",
]
