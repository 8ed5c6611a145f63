"""
Package managers module for Desktop Migrator.
"""

from .base import Package, PackageManager
from .flatpak import FlatpakPackageManager

__all__ = [
    'Package',
    'PackageManager',
    'FlatpakPackageManager',
]
