"""feedwatch - watch video feeds and live streams, notify tenant webhooks."""

__version__ = "0.1.0"
