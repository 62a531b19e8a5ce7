"""
Setup script for TLS Expiry Alert.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read requirements
def read_requirements(filename):
    """Read requirements from file."""
    requirements_path = Path(__file__).parent / filename
    if requirements_path.exists():
        with open(requirements_path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return []

setup(
    name="tls-expiry-alert",
    version="1.0.0",
    description="TLS certificate expiry probe with email and event log alerts",
    author="TLS Expiry Alert Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    include_package_data=True,
    install_requires=read_requirements('requirements.txt'),
    extras_require={
        'dev': read_requirements('requirements-dev.txt'),
    },
    entry_points={
        'console_scripts': [
            'tls-expiry-alert=main:main',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Monitoring",
        "Topic :: System :: Systems Administration",
        "Topic :: Security :: Cryptography",
    ],
    python_requires=">=3.9",
    keywords="tls ssl certificates expiry monitoring alerting smtp eventlog",
)
