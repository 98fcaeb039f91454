"""Message codecs and service clients for iOS devices: DTX, lockdown, settings, apps, usbmuxd messages, images and instruments."""

__version__ = "0.1.0"