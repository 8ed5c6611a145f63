#!/usr/bin/env python3
"""
Setup script for Desktop Migrator

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

from setuptools import setup, find_namespace_packages

setup(
    name="desktop-migrator",
    version="1.0.0",
    description="Move desktop configuration between Bluefin (GNOME) and Aurora (KDE) images",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["desktop_migrator", "desktop_migrator.*"]),
    entry_points={
        "console_scripts": [
            "desktop-migrator=desktop_migrator.__main__:main",
        ],
    },
    install_requires=[
        "distro>=1.5.0",  # For host and image family detection
        "tqdm>=4.60.0",   # For progress bars
        "httpx>=0.24.0",  # For fetching the flatpak catalogs
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: GNU Affero General Public License v3",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Desktop Environment",
    ],
)
